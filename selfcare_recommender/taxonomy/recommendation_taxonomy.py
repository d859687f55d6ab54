"""
Recommendation taxonomy.

Five enums describe every recommendation and the world around it:
  - ``RecommendationType``   — the *what*: which kind of next step is suggested?
  - ``Priority``             — the *how urgent*: single integer scale, 1 to 5.
  - ``RecommendationStatus`` — the lifecycle state of a stored recommendation.
  - ``InteractionAction``    — user actions that drive the lifecycle.
  - ``PartnerType``          — directory categories a recommendation can point to.

``AnalysisStatus`` mirrors the overall flag the analysis store keeps on each
lab analysis.

This module has NO imports from any other ``selfcare_recommender`` package.
"""

from enum import IntEnum, StrEnum


class RecommendationType(StrEnum):
    """Kind of action a recommendation proposes."""

    ANALYSIS = "ANALYSIS"
    SUPPLEMENT = "SUPPLEMENT"
    SERVICE = "SERVICE"
    ARTICLE = "ARTICLE"
    PRODUCT = "PRODUCT"
    LABORATORY = "LABORATORY"
    """Retest or follow-up lab work at a partner laboratory."""

    PHARMACY = "PHARMACY"
    """Medication or supplement available at a partner pharmacy."""

    CLINIC = "CLINIC"
    """Specialist consultation at a partner clinic."""


class Priority(IntEnum):
    """Recommendation urgency on a 1–5 scale (5 = most urgent).

    The named levels are the ones rules emit; any integer in [1, 5] is valid.
    """

    LOW = 3
    MEDIUM = 4
    HIGH = 5


PRIORITY_MIN = 1
PRIORITY_MAX = 5


class RecommendationStatus(StrEnum):
    """Lifecycle state of a persisted recommendation.

    ``ACTIVE`` is initial; ``PURCHASED`` and ``DISMISSED`` are terminal.
    """

    ACTIVE = "ACTIVE"
    VIEWED = "VIEWED"
    CLICKED = "CLICKED"
    PURCHASED = "PURCHASED"
    DISMISSED = "DISMISSED"


# States that count as "live" for the suppression invariant.
LIVE_STATUSES: frozenset[RecommendationStatus] = frozenset({
    RecommendationStatus.ACTIVE,
    RecommendationStatus.VIEWED,
})

TERMINAL_STATUSES: frozenset[RecommendationStatus] = frozenset({
    RecommendationStatus.PURCHASED,
    RecommendationStatus.DISMISSED,
})


class InteractionAction(StrEnum):
    """User action recorded against a recommendation."""

    VIEW = "view"
    CLICK = "click"
    PURCHASE = "purchase"
    DISMISS = "dismiss"


class PartnerType(StrEnum):
    """Partner directory categories."""

    CLINIC = "CLINIC"
    LABORATORY = "LABORATORY"
    PHARMACY = "PHARMACY"
    HEALTH_STORE = "HEALTH_STORE"
    NUTRITIONIST = "NUTRITIONIST"


class AnalysisStatus(StrEnum):
    """Overall flag of a lab analysis in the analysis store."""

    NORMAL = "normal"
    ABNORMAL = "abnormal"
