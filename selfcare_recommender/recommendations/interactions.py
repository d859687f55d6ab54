"""
Interaction recorder: the recommendation lifecycle state machine.

    ACTIVE ──view──> VIEWED ──click──> CLICKED ──purchase──> PURCHASED
      │                │
      └──dismiss───────┴──dismiss──> DISMISSED

Transition table
----------------
view     : ACTIVE -> VIEWED; accepted as a no-op from every other status.
click    : ACTIVE | VIEWED -> CLICKED.
purchase : ACTIVE | VIEWED | CLICKED -> PURCHASED (a purchase may happen
           without a recorded click).
dismiss  : ACTIVE | VIEWED -> DISMISSED.

Every action on an existing recommendation appends one ``InteractionEvent``,
whether or not the status changes. An action invalid from the current status
is still logged, then raises ``InvalidTransition`` with the status untouched.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Optional

from selfcare_recommender.db.repositories.recommendation_repo import (
    InteractionRepository,
    RecommendationRepository,
)
from selfcare_recommender.errors import InvalidTransition, NotFound
from selfcare_recommender.models.recommendation import InteractionEvent
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    InteractionAction,
    RecommendationStatus,
)
from selfcare_recommender.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

_S = RecommendationStatus

# (action, current status) -> next status. Missing pairs are invalid.
TRANSITIONS: dict[tuple[InteractionAction, RecommendationStatus], RecommendationStatus] = {
    (InteractionAction.VIEW, _S.ACTIVE):        _S.VIEWED,
    (InteractionAction.VIEW, _S.VIEWED):        _S.VIEWED,
    (InteractionAction.VIEW, _S.CLICKED):       _S.CLICKED,
    (InteractionAction.VIEW, _S.PURCHASED):     _S.PURCHASED,
    (InteractionAction.VIEW, _S.DISMISSED):     _S.DISMISSED,
    (InteractionAction.CLICK, _S.ACTIVE):       _S.CLICKED,
    (InteractionAction.CLICK, _S.VIEWED):       _S.CLICKED,
    (InteractionAction.PURCHASE, _S.ACTIVE):    _S.PURCHASED,
    (InteractionAction.PURCHASE, _S.VIEWED):    _S.PURCHASED,
    (InteractionAction.PURCHASE, _S.CLICKED):   _S.PURCHASED,
    (InteractionAction.DISMISS, _S.ACTIVE):     _S.DISMISSED,
    (InteractionAction.DISMISS, _S.VIEWED):     _S.DISMISSED,
}


def next_status(
    current: RecommendationStatus,
    action: InteractionAction,
    rec_id: Optional[int] = None,
) -> RecommendationStatus:
    """Return the status ``action`` leads to from ``current``.

    Raises:
        InvalidTransition: If the pair is not in ``TRANSITIONS``.
    """
    target = TRANSITIONS.get((InteractionAction(action), RecommendationStatus(current)))
    if target is None:
        raise InvalidTransition(rec_id, str(current), str(action))
    return target


class InteractionRecorder:
    """Apply user actions to stored recommendations and log them.

    Args:
        conn: Open connection; the caller owns the commit.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._recs = RecommendationRepository(conn)
        self._events = InteractionRepository(conn)

    def interact(
        self,
        rec_id: int,
        action: InteractionAction | str,
        metadata: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RecommendationStatus:
        """Record ``action`` on a recommendation and return its new status.

        Args:
            rec_id:   Recommendation to act on.
            action:   ``view`` / ``click`` / ``purchase`` / ``dismiss``.
            metadata: Optional client context stored on the event.
            user_id:  When given, the recommendation must belong to this user.
            now:      Event timestamp (defaults to ``utcnow()``).

        Raises:
            NotFound:          Unknown id, or owned by another user.
            InvalidTransition: Action not allowed from the current status. The
                               event is already appended; the caller decides
                               whether to commit it.
            ValueError:        Unknown action string.
        """
        action = InteractionAction(action)
        rec = (
            self._recs.get_by_id(rec_id)
            if user_id is None
            else self._recs.get_for_user(rec_id, user_id)
        )
        if rec is None:
            raise NotFound("recommendation", rec_id)

        # Logged even when the transition below is rejected.
        self._events.insert(InteractionEvent(
            recommendation_id=rec_id,
            action=action,
            metadata=metadata or {},
            created_at=now or utcnow(),
        ))

        target = next_status(rec.status, action, rec_id)
        if target != rec.status:
            self._recs.update_status(rec_id, target)
        logger.info("Recommendation %d: %s -> %s (%s)", rec_id, rec.status, target, action)
        return target

    def list_interactions(self, rec_id: int) -> list[InteractionEvent]:
        """Return the event log of one recommendation, oldest first."""
        return self._events.list_for_recommendation(rec_id)
