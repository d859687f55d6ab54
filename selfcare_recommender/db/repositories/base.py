"""
Base repository providing shared SQLite execution helpers.

All repositories inherit from ``BaseRepository`` and receive a
``sqlite3.Connection`` at construction time. The connection is owned by the
caller (typically via ``get_connection()``), which also owns the commit.

Design:
  - No ORM — all SQL is explicit and lives in repository methods.
  - Repositories speak Pydantic models, not raw dicts.
  - ``savepoint()`` scopes a unit of work inside the caller's transaction, so
    one failed insert can be undone without discarding its siblings.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, Optional

logger = logging.getLogger(__name__)


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> sqlite3.Cursor:
        """Execute a single SQL statement with ``?`` or ``:name`` placeholders."""
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def fetchone(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        return self.execute(sql, params).fetchall()

    def insert_returning_id(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> int:
        """Execute an INSERT and return the new rowid."""
        cursor = self.execute(sql, params)
        assert cursor.lastrowid is not None
        return int(cursor.lastrowid)

    @contextmanager
    def savepoint(self, name: str) -> Generator[None, None, None]:
        """Run the enclosed statements inside ``SAVEPOINT name``.

        Rolls back to the savepoint (and re-raises) on any exception; releases
        it otherwise. The surrounding transaction is left open either way.
        """
        self.conn.execute(f"SAVEPOINT {name};")
        try:
            yield
        except Exception:
            self.conn.execute(f"ROLLBACK TO SAVEPOINT {name};")
            self.conn.execute(f"RELEASE SAVEPOINT {name};")
            raise
        self.conn.execute(f"RELEASE SAVEPOINT {name};")


def dump_json(value: Optional[dict[str, Any]]) -> Optional[str]:
    """Serialise a metadata dict for a TEXT column (``None`` for empty)."""
    if not value:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def load_json(value: Optional[str]) -> dict[str, Any]:
    """Decode a metadata TEXT column; undecodable or non-object values become ``{}``."""
    if not value:
        return {}
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable metadata payload: %.80s", value)
        return {}
    return decoded if isinstance(decoded, dict) else {}
