"""
Recommendation drafts, stored recommendations, and interaction events.

``RecommendationDraft`` is the in-memory candidate a rule produces. Its
``priority`` is coerced to the integer scale here, at the boundary where
drafts are created, so ranking never has to care how a rule spelled it.

``Recommendation`` is the persisted record with lifecycle status and expiry.
``InteractionEvent`` is an append-only analytics log entry.

All three models are frozen — status changes produce a new ``Recommendation``
read back from the store, never an in-place mutation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    PRIORITY_MAX,
    PRIORITY_MIN,
    InteractionAction,
    Priority,
    RecommendationStatus,
    RecommendationType,
)

DedupKey = tuple[RecommendationType, str, Optional[int]]


def coerce_priority(value: Any) -> int:
    """Map a priority name, ``Priority`` member, or integer onto the 1–5 scale.

    Raises:
        ValueError: If the value is an unknown name or out of range.
    """
    if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
        try:
            return int(Priority[value.strip().upper()])
        except KeyError:
            raise ValueError(
                f"priority must be one of {[p.name for p in Priority]} "
                f"or an integer, got '{value}'."
            ) from None
    if isinstance(value, bool):
        raise ValueError("priority must not be a boolean.")
    number = int(value)
    if not PRIORITY_MIN <= number <= PRIORITY_MAX:
        raise ValueError(
            f"priority must be in [{PRIORITY_MIN}, {PRIORITY_MAX}], got {number}."
        )
    return number


class _RecommendationFields(BaseModel):
    """Fields shared by drafts and stored recommendations."""

    model_config = ConfigDict(frozen=True)

    type: RecommendationType
    title: str
    description: str = ""
    reason: str = ""
    priority: int = int(Priority.MEDIUM)
    partner_entity_id: Optional[int] = None
    product_id: Optional[int] = None
    analysis_id: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: Any) -> int:
        return coerce_priority(v)

    @field_validator("title")
    @classmethod
    def validate_title_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("title must not be empty.")
        return v.strip()

    @property
    def dedup_key(self) -> DedupKey:
        """Identity used for both ranking dedup and store suppression."""
        return (self.type, self.title, self.partner_entity_id)


class RecommendationDraft(_RecommendationFields):
    """An in-memory, not-yet-persisted candidate recommendation.

    Attributes:
        type: Kind of action proposed.
        title: Short headline; part of the dedup key.
        description: Longer explanation shown to the user.
        reason: Why the rule fired, with the triggering value.
        priority: Urgency on the 1–5 scale (accepts ``"HIGH"`` etc.).
        partner_entity_id: Partner directory record, or ``None``.
        product_id: Marketplace product, or ``None``.
        analysis_id: Analysis that triggered the draft (set by the evaluator).
        user_id: Target user (set by the evaluator).
        metadata: Opaque payload capturing the triggering values.
    """

    user_id: Optional[str] = None


class Recommendation(_RecommendationFields):
    """A persisted recommendation with lifecycle status and expiry.

    Attributes:
        rec_id: DB primary key.
        user_id: Owner; recommendations are never shared between users.
        status: Current lifecycle state.
        created_at: Insertion time (UTC).
        expires_at: Time after which the recommendation is stale (UTC).
    """

    rec_id: int
    user_id: str
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    created_at: datetime
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class InteractionEvent(BaseModel):
    """Immutable record of one user action on a recommendation.

    Attributes:
        event_id: DB primary key; ``None`` before insertion.
        recommendation_id: FK to ``recommendations.rec_id``.
        action: What the user did.
        metadata: Client-supplied context (page, source widget, etc.).
        created_at: When the action was recorded (UTC).
    """

    model_config = ConfigDict(frozen=True)

    event_id: Optional[int] = None
    recommendation_id: int
    action: InteractionAction
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
