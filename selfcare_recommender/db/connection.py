"""
SQLite connection management.

``get_connection(db_path, ...)`` is the one way the engine opens the database.
Every connection it yields has:

  - ``foreign_keys`` ON, so recommendations cannot point at unknown partners,
    analyses or runs;
  - WAL journaling (file databases only), so list requests can read while a
    generation run is writing;
  - a busy timeout instead of an immediate ``database is locked``;
  - ``sqlite3.Row`` rows.

The connection commits on clean exit and rolls back on exception.

``open_database(config.database)`` reads those settings from ``AppConfig``;
``initialize_database(conn)`` brings a fresh or older file up to date. Both the
CLI and the HTTP lifespan go through them::

    with open_database(config.database) as conn:
        initialize_database(conn)
        RecommendationRepository(conn).list_for_user("user-1")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator, Optional

from selfcare_recommender.db.migrations import run_migrations
from selfcare_recommender.db.schema import apply_schema

if TYPE_CHECKING:
    from selfcare_recommender.config import DatabaseConfig

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Yield a configured connection to ``db_path``.

    Parent directories of a file database are created on demand.

    Raises:
        sqlite3.OperationalError: If the file cannot be opened, or stays
            locked longer than ``busy_timeout_ms``.
    """
    in_memory = db_path == IN_MEMORY
    if not in_memory:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    try:
        _apply_pragmas(conn, wal_mode=wal_mode and not in_memory, busy_timeout_ms=busy_timeout_ms)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def open_database(database: "DatabaseConfig", db_path: Optional[str] = None):
    """``get_connection`` using ``AppConfig.database``; ``db_path`` overrides the file."""
    return get_connection(
        db_path or database.db_path,
        wal_mode=database.wal_mode,
        busy_timeout_ms=database.busy_timeout_ms,
    )


def initialize_database(conn: sqlite3.Connection) -> int:
    """Create missing tables and indexes, then run pending migrations.

    Idempotent. Returns the number of migrations applied by this call.
    """
    apply_schema(conn)
    return run_migrations(conn)


# Must run before any DML/DDL on the connection.
def _apply_pragmas(conn: sqlite3.Connection, wal_mode: bool, busy_timeout_ms: int) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    if wal_mode:
        mode = conn.execute("PRAGMA journal_mode = WAL;").fetchone()[0]
        if str(mode).lower() != "wal":
            logger.warning("WAL journal mode unavailable, using '%s'", mode)
