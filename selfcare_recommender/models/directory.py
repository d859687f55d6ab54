"""
Records owned by external collaborators.

``Partner`` is a partner directory entry (clinic, laboratory, pharmacy, ...).
``Analysis`` is a lab analysis from the analysis store; ``results`` stays an
opaque blob until ``recommendations.normalizer`` reads it.

The engine only reads these. The local SQLite tables that back them exist so
the service runs standalone; they can be swapped for any object satisfying
``PartnerLookup`` / ``AnalysisSource``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    AnalysisStatus,
    PartnerType,
)


class Partner(BaseModel):
    """A partner directory entry a recommendation can point to.

    Attributes:
        partner_id: Directory primary key.
        name: Display name.
        partner_type: Directory category.
        is_active: Inactive partners are never recommended.
        is_verified: Verified partners are listed first.
        rating: Average user rating in [0, 5], if any.
        city: City used for optional location filtering.
    """

    model_config = ConfigDict(frozen=True)

    partner_id: Optional[int] = None
    name: str
    partner_type: PartnerType
    is_active: bool = True
    is_verified: bool = False
    rating: Optional[float] = None
    city: Optional[str] = None

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0.0 <= v <= 5.0:
            raise ValueError(f"rating must be in [0, 5], got {v}.")
        return v


class Analysis(BaseModel):
    """A lab analysis as kept by the analysis store.

    Attributes:
        analysis_id: Store primary key; ``None`` before insertion.
        user_id: Owner of the analysis.
        title: Human-readable title ("Общий анализ крови").
        status: Overall flag; only ``abnormal`` analyses are evaluated.
        results: Opaque results blob (JSON text, list, or mapping).
        created_at: When the analysis was stored (UTC).
    """

    model_config = ConfigDict(frozen=True)

    analysis_id: Optional[int] = None
    user_id: str
    title: str = ""
    status: AnalysisStatus
    results: Any = None
    created_at: Optional[datetime] = None

    @property
    def is_abnormal(self) -> bool:
        return self.status == AnalysisStatus.ABNORMAL
