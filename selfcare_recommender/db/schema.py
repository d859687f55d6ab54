"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. partners                    (no FKs; local partner directory)
  2. analyses                    (no FKs; local analysis store)
  3. recommendations             (→ partners, analyses; weak, ON DELETE SET NULL)
  4. recommendation_interactions (→ recommendations)
  5. generation_runs             (no FKs; audit log)

The suppression invariant — at most one ACTIVE or VIEWED recommendation per
``(user_id, type, title, partner_entity_id)`` — is enforced by the partial
unique index ``uq_recommendations_live``, created by migration 0001 in
``migrations.py`` rather than here: a file holding duplicate live rows must
have them demoted before the index can exist. A NULL partner is folded to 0
so partner-less recommendations are covered too.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_PARTNERS = """
CREATE TABLE IF NOT EXISTS partners (
    partner_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL,
    partner_type    TEXT    NOT NULL,
    is_active       INTEGER NOT NULL DEFAULT 1,
    is_verified     INTEGER NOT NULL DEFAULT 0,
    rating          REAL,
    city            TEXT,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_partners_type_active
    ON partners(partner_type, is_active);
"""

_DDL_ANALYSES = """
CREATE TABLE IF NOT EXISTS analyses (
    analysis_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT    NOT NULL,
    title           TEXT    NOT NULL DEFAULT '',
    status          TEXT    NOT NULL,
    results         TEXT,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_analyses_user_status_time
    ON analyses(user_id, status, created_at DESC);
"""

_DDL_RECOMMENDATIONS = """
CREATE TABLE IF NOT EXISTS recommendations (
    rec_id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id             TEXT    NOT NULL,
    type                TEXT    NOT NULL,
    title               TEXT    NOT NULL,
    description         TEXT    NOT NULL DEFAULT '',
    reason              TEXT    NOT NULL DEFAULT '',
    priority            INTEGER NOT NULL,
    partner_entity_id   INTEGER REFERENCES partners(partner_id) ON DELETE SET NULL,
    product_id          INTEGER,
    analysis_id         INTEGER REFERENCES analyses(analysis_id) ON DELETE SET NULL,
    metadata            TEXT,
    status              TEXT    NOT NULL DEFAULT 'ACTIVE',
    created_at          TEXT    NOT NULL,
    expires_at          TEXT
);

CREATE INDEX IF NOT EXISTS idx_recommendations_user_status
    ON recommendations(user_id, status, priority DESC, created_at DESC);
"""

_DDL_INTERACTIONS = """
CREATE TABLE IF NOT EXISTS recommendation_interactions (
    event_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    recommendation_id   INTEGER NOT NULL REFERENCES recommendations(rec_id),
    action              TEXT    NOT NULL,
    metadata            TEXT,
    created_at          TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_interactions_recommendation
    ON recommendation_interactions(recommendation_id, created_at);
"""

_DDL_GENERATION_RUNS = """
CREATE TABLE IF NOT EXISTS generation_runs (
    run_id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug                TEXT    NOT NULL UNIQUE,
    user_id                 TEXT    NOT NULL,
    analysis_id             INTEGER,
    status                  TEXT    NOT NULL DEFAULT 'started',
    analyses_evaluated      INTEGER NOT NULL DEFAULT 0,
    drafts_generated        INTEGER NOT NULL DEFAULT 0,
    recommendations_created INTEGER NOT NULL DEFAULT 0,
    error_message           TEXT,
    started_at              TEXT    NOT NULL,
    finished_at             TEXT
);

CREATE INDEX IF NOT EXISTS idx_generation_runs_user_time
    ON generation_runs(user_id, started_at DESC);
"""

_ALL_DDL: list[str] = [
    _DDL_PARTNERS,
    _DDL_ANALYSES,
    _DDL_RECOMMENDATIONS,
    _DDL_INTERACTIONS,
    _DDL_GENERATION_RUNS,
]

ALL_TABLE_NAMES: list[str] = [
    "partners",
    "analyses",
    "recommendations",
    "recommendation_interactions",
    "generation_runs",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to the given connection.

    Idempotent — safe to call on an already-initialized database.
    Each statement uses ``IF NOT EXISTS`` guards.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of table names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of index names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
