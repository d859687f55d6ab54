"""
Forward-only schema migrations.

``apply_schema()`` creates the tables and plain indexes. Migrations hold the
changes that may have to repair existing rows first, so they always run after
it (see ``initialize_database``). On a fresh database they only add the
constraint.

Applied versions are recorded in ``schema_versions``. Each migration runs in
its own transaction together with its ``schema_versions`` row, so a failure
leaves neither behind.

To add one, write ``_NNNN_what(conn)`` and append a ``Migration`` to
``MIGRATIONS``; versions must sort in application order.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: str
    description: str
    apply: Callable[[sqlite3.Connection], None]


def _0001_live_recommendation_unique_index(conn: sqlite3.Connection) -> None:
    # Older files may hold several live rows for one key; the newest stays live.
    conn.execute("""
        UPDATE recommendations
        SET status = 'DISMISSED'
        WHERE status IN ('ACTIVE', 'VIEWED')
          AND rec_id NOT IN (
              SELECT MAX(rec_id)
              FROM recommendations
              WHERE status IN ('ACTIVE', 'VIEWED')
              GROUP BY user_id, type, title, COALESCE(partner_entity_id, 0)
          );
    """)
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_recommendations_live
            ON recommendations(user_id, type, title, COALESCE(partner_entity_id, 0))
            WHERE status IN ('ACTIVE', 'VIEWED');
    """)


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        "0001_live_recommendation_unique_index",
        "Demote duplicate live recommendations and add uq_recommendations_live",
        _0001_live_recommendation_unique_index,
    ),
)


def applied_versions(conn: sqlite3.Connection) -> set[str]:
    _ensure_version_table(conn)
    return {row[0] for row in conn.execute("SELECT version_id FROM schema_versions;")}


def run_migrations(conn: sqlite3.Connection) -> int:
    """Apply every migration not yet recorded; return how many ran.

    Raises:
        sqlite3.Error: From the failing migration, after rolling it back.
    """
    done = applied_versions(conn)
    conn.commit()

    pending = [m for m in MIGRATIONS if m.version not in done]
    for migration in pending:
        logger.info("Applying migration %s: %s", migration.version, migration.description)
        try:
            migration.apply(conn)
            conn.execute(
                "INSERT INTO schema_versions (version_id, description) VALUES (?, ?);",
                (migration.version, migration.description),
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("Migration %s FAILED: %s", migration.version, exc)
            raise

    if pending:
        logger.info("Applied %d migration(s).", len(pending))
    return len(pending)


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_versions (
            version_id  TEXT NOT NULL PRIMARY KEY,
            applied_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            description TEXT
        );
    """)
