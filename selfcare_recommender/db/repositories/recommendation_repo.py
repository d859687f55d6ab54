"""
Repositories for stored recommendations, their interaction log, and
generation run metadata.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from selfcare_recommender.db.repositories.base import BaseRepository, dump_json, load_json
from selfcare_recommender.models.meta import GenerationRun
from selfcare_recommender.models.recommendation import (
    InteractionEvent,
    Recommendation,
    RecommendationDraft,
)
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    LIVE_STATUSES,
    InteractionAction,
    RecommendationStatus,
    RecommendationType,
)
from selfcare_recommender.utils.time_utils import from_db, to_db, utcnow

logger = logging.getLogger(__name__)

_LIVE_STATUS_VALUES: tuple[str, ...] = tuple(sorted(s.value for s in LIVE_STATUSES))


class RecommendationRepository(BaseRepository):
    """Read/write access to ``recommendations``."""

    def insert(
        self,
        user_id: str,
        draft: RecommendationDraft,
        created_at: datetime,
        expires_at: Optional[datetime],
    ) -> int:
        """Insert a draft as a new ACTIVE recommendation and return its ``rec_id``.

        Raises:
            sqlite3.IntegrityError: If a live recommendation with the same
                ``(user_id, type, title, partner_entity_id)`` already exists.
        """
        return self.insert_returning_id(
            """
            INSERT INTO recommendations (
                user_id, type, title, description, reason, priority,
                partner_entity_id, product_id, analysis_id, metadata,
                status, created_at, expires_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                user_id,
                draft.type.value,
                draft.title,
                draft.description,
                draft.reason,
                draft.priority,
                draft.partner_entity_id,
                draft.product_id,
                draft.analysis_id,
                dump_json(draft.metadata),
                RecommendationStatus.ACTIVE.value,
                to_db(created_at),
                to_db(expires_at),
            ),
        )

    def find_live(
        self,
        user_id: str,
        rec_type: RecommendationType,
        title: str,
        partner_entity_id: Optional[int],
    ) -> Optional[Recommendation]:
        """Return the ACTIVE/VIEWED recommendation holding this key, if any."""
        row = self.fetchone(
            f"""
            SELECT * FROM recommendations
            WHERE user_id = ?
              AND type = ?
              AND title = ?
              AND COALESCE(partner_entity_id, 0) = COALESCE(?, 0)
              AND status IN ({_placeholders(_LIVE_STATUS_VALUES)})
            LIMIT 1;
            """,
            (user_id, rec_type.value, title, partner_entity_id, *_LIVE_STATUS_VALUES),
        )
        return _row_to_recommendation(row) if row else None

    def get_by_id(self, rec_id: int) -> Optional[Recommendation]:
        row = self.fetchone("SELECT * FROM recommendations WHERE rec_id = ?;", (rec_id,))
        return _row_to_recommendation(row) if row else None

    def get_for_user(self, rec_id: int, user_id: str) -> Optional[Recommendation]:
        """Fetch a recommendation only if ``user_id`` owns it."""
        row = self.fetchone(
            "SELECT * FROM recommendations WHERE rec_id = ? AND user_id = ?;",
            (rec_id, user_id),
        )
        return _row_to_recommendation(row) if row else None

    def list_for_user(
        self,
        user_id: str,
        rec_type: Optional[RecommendationType] = None,
        status: Optional[RecommendationStatus] = None,
        include_expired: bool = True,
        now: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[Recommendation]:
        """List a user's recommendations; every given filter is ANDed.

        Ordered by priority descending, then newest first.

        Args:
            user_id:         Owner.
            rec_type:        Optional type filter.
            status:          Optional status filter (``None`` = any status).
            include_expired: When ``False``, rows with ``expires_at <= now`` are dropped.
            now:             Reference time for expiry (defaults to ``utcnow()``).
            limit:           Maximum rows to return.
        """
        clauses = ["user_id = ?"]
        params: list[object] = [user_id]
        if rec_type is not None:
            clauses.append("type = ?")
            params.append(RecommendationType(rec_type).value)
        if status is not None:
            clauses.append("status = ?")
            params.append(RecommendationStatus(status).value)
        if not include_expired:
            clauses.append("(expires_at IS NULL OR expires_at > ?)")
            params.append(to_db(now or utcnow()))
        params.append(limit)

        rows = self.fetchall(
            f"""
            SELECT * FROM recommendations
            WHERE {' AND '.join(clauses)}
            ORDER BY priority DESC, created_at DESC, rec_id DESC
            LIMIT ?;
            """,
            tuple(params),
        )
        return [_row_to_recommendation(r) for r in rows]

    def update_status(self, rec_id: int, status: RecommendationStatus) -> None:
        self.execute(
            "UPDATE recommendations SET status = ? WHERE rec_id = ?;",
            (RecommendationStatus(status).value, rec_id),
        )

    def find_duplicate_ids(self, user_id: Optional[str] = None) -> list[int]:
        """Return ids of every row that is not the newest for its key.

        The key is ``(user_id, type, title, partner_entity_id)``, regardless of
        status. Newest means latest ``created_at``, then highest ``rec_id``.
        """
        where = "WHERE user_id = ?" if user_id is not None else ""
        params: tuple[object, ...] = (user_id,) if user_id is not None else ()
        rows = self.fetchall(
            f"""
            SELECT rec_id FROM (
                SELECT rec_id,
                       ROW_NUMBER() OVER (
                           PARTITION BY user_id, type, title, COALESCE(partner_entity_id, 0)
                           ORDER BY created_at DESC, rec_id DESC
                       ) AS rn
                FROM recommendations
                {where}
            )
            WHERE rn > 1
            ORDER BY rec_id;
            """,
            params,
        )
        return [int(r["rec_id"]) for r in rows]

    def delete(self, rec_ids: list[int]) -> int:
        """Delete recommendations by id and return the number removed."""
        if not rec_ids:
            return 0
        cursor = self.execute(
            f"DELETE FROM recommendations WHERE rec_id IN ({_placeholders(rec_ids)});",
            tuple(rec_ids),
        )
        return cursor.rowcount


class InteractionRepository(BaseRepository):
    """Append-only access to ``recommendation_interactions``.

    There is deliberately no update or delete method.
    """

    def insert(self, event: InteractionEvent) -> int:
        """Append an interaction event and return its ``event_id``."""
        return self.insert_returning_id(
            """
            INSERT INTO recommendation_interactions (
                recommendation_id, action, metadata, created_at
            ) VALUES (?, ?, ?, ?);
            """,
            (
                event.recommendation_id,
                event.action.value,
                dump_json(event.metadata),
                to_db(event.created_at or utcnow()),
            ),
        )

    def list_for_recommendation(self, rec_id: int) -> list[InteractionEvent]:
        """Return a recommendation's events in the order they were recorded."""
        rows = self.fetchall(
            """
            SELECT * FROM recommendation_interactions
            WHERE recommendation_id = ?
            ORDER BY created_at ASC, event_id ASC;
            """,
            (rec_id,),
        )
        return [_row_to_event(r) for r in rows]

    def recommendation_ids_with_history(self, rec_ids: list[int]) -> set[int]:
        """Return the subset of ``rec_ids`` that have at least one event."""
        if not rec_ids:
            return set()
        rows = self.fetchall(
            f"""
            SELECT DISTINCT recommendation_id FROM recommendation_interactions
            WHERE recommendation_id IN ({_placeholders(rec_ids)});
            """,
            tuple(rec_ids),
        )
        return {int(r["recommendation_id"]) for r in rows}


class GenerationRunRepository(BaseRepository):
    """Read/write access to ``generation_runs``."""

    def insert_run(self, run: GenerationRun) -> int:
        return self.insert_returning_id(
            """
            INSERT INTO generation_runs (
                run_slug, user_id, analysis_id, status, analyses_evaluated,
                drafts_generated, recommendations_created, error_message,
                started_at, finished_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                run.run_slug,
                run.user_id,
                run.analysis_id,
                run.status,
                run.analyses_evaluated,
                run.drafts_generated,
                run.recommendations_created,
                run.error_message,
                to_db(run.started_at),
                to_db(run.finished_at),
            ),
        )

    def update_run(self, run: GenerationRun) -> None:
        """Update the mutable fields of an existing run record.

        Raises:
            ValueError: If ``run.run_id`` is ``None``.
        """
        if run.run_id is None:
            raise ValueError("Cannot update GenerationRun without a run_id.")
        self.execute(
            """
            UPDATE generation_runs SET
                status                  = ?,
                analyses_evaluated      = ?,
                drafts_generated        = ?,
                recommendations_created = ?,
                error_message           = ?,
                finished_at             = ?
            WHERE run_id = ?;
            """,
            (
                run.status,
                run.analyses_evaluated,
                run.drafts_generated,
                run.recommendations_created,
                run.error_message,
                to_db(run.finished_at),
                run.run_id,
            ),
        )

    def get_recent_runs(self, user_id: Optional[str] = None, limit: int = 20) -> list[GenerationRun]:
        """Fetch recent runs, most recent first, optionally for one user."""
        if user_id is not None:
            rows = self.fetchall(
                """
                SELECT * FROM generation_runs
                WHERE user_id = ?
                ORDER BY started_at DESC, run_id DESC LIMIT ?;
                """,
                (user_id, limit),
            )
        else:
            rows = self.fetchall(
                "SELECT * FROM generation_runs ORDER BY started_at DESC, run_id DESC LIMIT ?;",
                (limit,),
            )
        return [_row_to_run(r) for r in rows]


# ── Private helpers ────────────────────────────────────────────────────────────

def _placeholders(values: tuple[object, ...] | list[object] | list[int]) -> str:
    return ", ".join("?" for _ in values)


def _row_to_recommendation(row: sqlite3.Row) -> Recommendation:
    created_at = from_db(row["created_at"])
    assert created_at is not None
    return Recommendation(
        rec_id=row["rec_id"],
        user_id=row["user_id"],
        type=RecommendationType(row["type"]),
        title=row["title"],
        description=row["description"],
        reason=row["reason"],
        priority=row["priority"],
        partner_entity_id=row["partner_entity_id"],
        product_id=row["product_id"],
        analysis_id=row["analysis_id"],
        metadata=load_json(row["metadata"]),
        status=RecommendationStatus(row["status"]),
        created_at=created_at,
        expires_at=from_db(row["expires_at"]),
    )


def _row_to_event(row: sqlite3.Row) -> InteractionEvent:
    return InteractionEvent(
        event_id=row["event_id"],
        recommendation_id=row["recommendation_id"],
        action=InteractionAction(row["action"]),
        metadata=load_json(row["metadata"]),
        created_at=from_db(row["created_at"]),
    )


def _row_to_run(row: sqlite3.Row) -> GenerationRun:
    started_at = from_db(row["started_at"])
    assert started_at is not None
    return GenerationRun(
        run_id=row["run_id"],
        run_slug=row["run_slug"],
        user_id=row["user_id"],
        analysis_id=row["analysis_id"],
        status=row["status"],
        analyses_evaluated=row["analyses_evaluated"],
        drafts_generated=row["drafts_generated"],
        recommendations_created=row["recommendations_created"],
        error_message=row["error_message"],
        started_at=started_at,
        finished_at=from_db(row["finished_at"]),
    )
