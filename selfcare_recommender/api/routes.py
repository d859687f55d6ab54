"""
Recommendation endpoints.

Every handler is ``async`` and receives its SQLite connection from the
``get_connection_dep`` dependency, so the connection is opened, used and
closed on the event-loop thread.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from selfcare_recommender.api.schemas import (
    GenerateRequest,
    GenerateResponse,
    InteractRequest,
    InteractResponse,
    RecommendationDetail,
    RecommendationList,
)
from selfcare_recommender.config import AppConfig
from selfcare_recommender.db.connection import open_database
from selfcare_recommender.recommendations.service import (
    RecommendationService,
    build_partner_lookup,
)
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    RecommendationStatus,
    RecommendationType,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


async def get_connection_dep(request: Request) -> AsyncIterator[sqlite3.Connection]:
    """Yield one connection per request; committed on success, rolled back on error."""
    config: AppConfig = request.app.state.config
    with open_database(config.database) as conn:
        yield conn


def _service(
    request: Request, conn: sqlite3.Connection, city: Optional[str] = None
) -> RecommendationService:
    config: AppConfig = request.app.state.config
    return RecommendationService(
        conn, config, partners=build_partner_lookup(conn, config, city=city)
    )


@router.post("/users/{user_id}/recommendations/generate", response_model=GenerateResponse)
async def generate_recommendations(
    user_id: str,
    request: Request,
    body: Optional[GenerateRequest] = None,
    conn: sqlite3.Connection = Depends(get_connection_dep),
) -> GenerateResponse:
    body = body or GenerateRequest()
    result = await _service(request, conn, city=body.city).generate(
        user_id, analysis_id=body.analysis_id
    )
    return GenerateResponse(
        run_slug=result.run.run_slug,
        analyses_evaluated=result.run.analyses_evaluated,
        drafts_generated=result.run.drafts_generated,
        created=result.recommendations,
    )


@router.get("/users/{user_id}/recommendations", response_model=RecommendationList)
async def list_recommendations(
    user_id: str,
    request: Request,
    type: Optional[RecommendationType] = None,
    status: str = Query("ACTIVE", description="Lifecycle status, or ALL."),
    limit: Optional[int] = Query(None, ge=1, le=200),
    include_expired: bool = False,
    conn: sqlite3.Connection = Depends(get_connection_dep),
) -> RecommendationList:
    if status.upper() == "ALL":
        status_filter = None
    else:
        try:
            status_filter = RecommendationStatus(status.upper())
        except ValueError:
            raise HTTPException(
                status_code=422,
                detail=f"Unknown status '{status}'. Valid: "
                       f"{[s.value for s in RecommendationStatus] + ['ALL']}",
            )

    recs = _service(request, conn).list(
        user_id,
        type=type,
        status=status_filter,
        limit=limit,
        include_expired=include_expired,
    )
    return RecommendationList(user_id=user_id, count=len(recs), recommendations=recs)


@router.get("/users/{user_id}/recommendations/{rec_id}", response_model=RecommendationDetail)
async def get_recommendation(
    user_id: str,
    rec_id: int,
    request: Request,
    conn: sqlite3.Connection = Depends(get_connection_dep),
) -> RecommendationDetail:
    service = _service(request, conn)
    rec = service.get(rec_id, user_id)
    return RecommendationDetail(
        recommendation=rec,
        interactions=service.list_interactions(rec_id),
    )


@router.post("/recommendations/{rec_id}/interact", response_model=InteractResponse)
async def interact(
    rec_id: int,
    body: InteractRequest,
    request: Request,
    conn: sqlite3.Connection = Depends(get_connection_dep),
) -> InteractResponse:
    status = _service(request, conn).interact(
        rec_id, body.action, metadata=body.metadata, user_id=body.user_id
    )
    return InteractResponse(recommendation_id=rec_id, status=status)
