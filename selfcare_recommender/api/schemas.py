"""
Request and response bodies for the HTTP API.

Responses embed the domain models directly; only envelopes live here.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from selfcare_recommender.models.recommendation import InteractionEvent, Recommendation
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    InteractionAction,
    RecommendationStatus,
)


class GenerateRequest(BaseModel):
    analysis_id: Optional[int] = None
    city: Optional[str] = None


class GenerateResponse(BaseModel):
    run_slug: str
    analyses_evaluated: int
    drafts_generated: int
    created: list[Recommendation]


class RecommendationList(BaseModel):
    user_id: str
    count: int
    recommendations: list[Recommendation]


class RecommendationDetail(BaseModel):
    recommendation: Recommendation
    interactions: list[InteractionEvent]


class InteractRequest(BaseModel):
    action: InteractionAction
    metadata: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None


class InteractResponse(BaseModel):
    recommendation_id: int
    status: RecommendationStatus
