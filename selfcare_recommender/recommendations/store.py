"""
Recommendation store: suppression-aware persistence and listing.

Suppression
-----------
For a given ``(user_id, type, title, partner_entity_id)`` at most one
recommendation may be ACTIVE or VIEWED. ``persist()`` checks for a live row
before inserting, and the ``uq_recommendations_live`` partial unique index
rejects the insert if a concurrent run got there first. Both cases count as
a suppressed duplicate, not an error. Other integrity failures (an unknown
partner id, for one) skip the draft with a warning.

Once the live row is CLICKED, PURCHASED or DISMISSED the key is free again,
so a later run may create a fresh ACTIVE recommendation for it.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from selfcare_recommender.db.repositories.recommendation_repo import (
    InteractionRepository,
    RecommendationRepository,
)
from selfcare_recommender.errors import NotFound
from selfcare_recommender.models.recommendation import Recommendation, RecommendationDraft
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    RecommendationStatus,
    RecommendationType,
)
from selfcare_recommender.utils.time_utils import expiry_from, utcnow

logger = logging.getLogger(__name__)


class RecommendationStore:
    """Persist ranked drafts and read stored recommendations back.

    Args:
        conn:        Open connection; the caller owns the commit.
        expiry_days: Lifetime of every newly stored recommendation.
    """

    def __init__(self, conn: sqlite3.Connection, expiry_days: int = 30) -> None:
        self._recs = RecommendationRepository(conn)
        self._events = InteractionRepository(conn)
        self._expiry_days = expiry_days

    def persist(
        self,
        user_id: str,
        drafts: list[RecommendationDraft],
        now: Optional[datetime] = None,
    ) -> list[Recommendation]:
        """Store every draft that is not suppressed.

        Each insert runs in its own savepoint; a failure on one draft is logged
        and the remaining drafts are still attempted.

        Returns:
            Only the newly created recommendations, in draft order.
        """
        created_at = now or utcnow()
        expires_at = expiry_from(created_at, self._expiry_days)
        created: list[Recommendation] = []
        suppressed = 0

        for draft in drafts:
            if self._recs.find_live(user_id, draft.type, draft.title, draft.partner_entity_id):
                suppressed += 1
                logger.debug("Suppressed live duplicate: %s / %s", draft.type, draft.title)
                continue
            try:
                with self._recs.savepoint("persist_draft"):
                    rec_id = self._recs.insert(user_id, draft, created_at, expires_at)
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" not in str(exc):
                    logger.warning("Failed to store '%s' for user %s: %s", draft.title, user_id, exc)
                    continue
                suppressed += 1
                logger.debug("Suppressed concurrent duplicate: %s / %s", draft.type, draft.title)
                continue
            except sqlite3.Error as exc:
                logger.warning("Failed to store '%s' for user %s: %s", draft.title, user_id, exc)
                continue

            rec = self._recs.get_by_id(rec_id)
            if rec is not None:
                created.append(rec)

        logger.info(
            "Persisted %d new recommendation(s) for user %s (%d suppressed)",
            len(created), user_id, suppressed,
        )
        return created

    def list_active(
        self,
        user_id: str,
        type: Optional[RecommendationType] = None,
        status: Optional[RecommendationStatus] = RecommendationStatus.ACTIVE,
        include_expired: bool = False,
        limit: int = 20,
        now: Optional[datetime] = None,
    ) -> list[Recommendation]:
        """List a user's recommendations, highest priority then newest first.

        ``status`` defaults to ACTIVE; pass ``None`` for every status. Expired
        rows are left out unless ``include_expired`` is set.
        """
        return self._recs.list_for_user(
            user_id,
            rec_type=type,
            status=status,
            include_expired=include_expired,
            now=now,
            limit=limit,
        )

    def get(self, rec_id: int, user_id: Optional[str] = None) -> Recommendation:
        """Fetch one recommendation, scoped to ``user_id`` when given.

        Raises:
            NotFound: If the id is unknown or owned by another user.
        """
        if user_id is None:
            rec = self._recs.get_by_id(rec_id)
        else:
            rec = self._recs.get_for_user(rec_id, user_id)
        if rec is None:
            raise NotFound("recommendation", rec_id)
        return rec

    def cleanup_duplicates(self, user_id: Optional[str] = None) -> int:
        """Delete older rows that share a key with a newer one.

        The newest row per ``(user_id, type, title, partner_entity_id)`` is
        kept. Rows with recorded interactions are kept too, because the event
        log is append-only.

        Returns:
            Number of recommendations deleted.
        """
        candidates = self._recs.find_duplicate_ids(user_id)
        if not candidates:
            return 0
        with_history = self._events.recommendation_ids_with_history(candidates)
        deletable = [rec_id for rec_id in candidates if rec_id not in with_history]
        deleted = self._recs.delete(deletable)
        logger.info(
            "Removed %d duplicate recommendation(s); kept %d with interaction history",
            deleted, len(with_history),
        )
        return deleted
