"""
Tests for selfcare_recommender/db/connection.py.

What we test
------------
- open_database creates parent directories and honours the db_path override.
- Pragmas: foreign keys ON, WAL for file databases, memory mode untouched.
- Commit on clean exit, rollback on exception.
- initialize_database is idempotent: migrations run once.
"""

from __future__ import annotations

import sqlite3

import pytest

from selfcare_recommender.config import DatabaseConfig
from selfcare_recommender.db.connection import (
    get_connection,
    initialize_database,
    open_database,
)
from selfcare_recommender.db.migrations import MIGRATIONS


@pytest.fixture
def database(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(db_path=str(tmp_path / "nested" / "dir" / "engine.db"))


def test_parent_dirs_created(database, tmp_path):
    with open_database(database) as conn:
        conn.execute("SELECT 1;")
    assert (tmp_path / "nested" / "dir" / "engine.db").exists()


def test_db_path_override(database, tmp_path):
    other = tmp_path / "other.db"
    with open_database(database, str(other)):
        pass
    assert other.exists()


def test_pragmas(database):
    with open_database(database) as conn:
        assert conn.execute("PRAGMA foreign_keys;").fetchone()[0] == 1
        assert conn.execute("PRAGMA journal_mode;").fetchone()[0].lower() == "wal"
        assert isinstance(conn.execute("SELECT 1 AS one;").fetchone(), sqlite3.Row)


def test_in_memory_skips_wal():
    with get_connection(":memory:") as conn:
        assert conn.execute("PRAGMA journal_mode;").fetchone()[0].lower() == "memory"


def test_commit_and_rollback(database):
    with open_database(database) as conn:
        conn.execute("CREATE TABLE t (x INTEGER);")
        conn.execute("INSERT INTO t VALUES (1);")

    with pytest.raises(RuntimeError):
        with open_database(database) as conn:
            conn.execute("INSERT INTO t VALUES (2);")
            raise RuntimeError("boom")

    with open_database(database) as conn:
        assert [r["x"] for r in conn.execute("SELECT x FROM t;")] == [1]


def test_initialize_database_idempotent(database):
    with open_database(database) as conn:
        assert initialize_database(conn) == len(MIGRATIONS)
    with open_database(database) as conn:
        assert initialize_database(conn) == 0
        tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table';")}
    assert {"partners", "analyses", "recommendations", "recommendation_interactions", "generation_runs"} <= tables
