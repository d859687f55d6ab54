"""
Recommendation service: the facade the CLI and HTTP layers call.

One ``RecommendationService`` wraps one open connection, so it lives for a
single request or command. It wires the evaluator, ranker, store and
interaction recorder together from ``AppConfig`` and records every
``generate`` call as a ``GenerationRun`` audit row.

Usage::

    with open_database(config.database) as conn:
        service = RecommendationService(conn, config)
        result = asyncio.run(service.generate("user-1"))
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from selfcare_recommender.config import AppConfig
from selfcare_recommender.db.repositories.analysis_repo import AnalysisRepository
from selfcare_recommender.db.repositories.partner_repo import (
    MirroringPartnerDirectory,
    SqlitePartnerDirectory,
)
from selfcare_recommender.db.repositories.recommendation_repo import GenerationRunRepository
from selfcare_recommender.errors import InvalidTransition
from selfcare_recommender.ingestion.directory_client import HttpPartnerDirectory
from selfcare_recommender.models.meta import GenerationRun
from selfcare_recommender.models.recommendation import InteractionEvent, Recommendation
from selfcare_recommender.recommendations.evaluator import RuleEvaluator
from selfcare_recommender.recommendations.interactions import InteractionRecorder
from selfcare_recommender.recommendations.interfaces import AnalysisSource, PartnerLookup
from selfcare_recommender.recommendations.matcher import IndicatorMatcher, SubstringIndicatorMatcher
from selfcare_recommender.recommendations.ranker import rank
from selfcare_recommender.recommendations.rules import Rule, build_default_catalog
from selfcare_recommender.recommendations.store import RecommendationStore
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    InteractionAction,
    RecommendationStatus,
    RecommendationType,
)
from selfcare_recommender.utils.logging import log_context
from selfcare_recommender.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def build_partner_lookup(
    conn: sqlite3.Connection, config: AppConfig, city: Optional[str] = None
) -> PartnerLookup:
    """Pick the partner source configured under ``[directory]``.

    With a ``base_url`` the marketplace service is queried and its results
    are mirrored into the local table; otherwise the local table is read.
    """
    directory = config.directory
    if directory.base_url:
        remote = HttpPartnerDirectory(
            directory.base_url, city=city, timeout=directory.timeout_seconds
        )
        return MirroringPartnerDirectory(remote, conn)
    return SqlitePartnerDirectory(conn, city=city)


@dataclass
class GenerationResult:
    """Outcome of one ``generate`` call.

    Attributes:
        run:             The finished audit record.
        recommendations: Newly created recommendations, highest priority first.
    """

    run: GenerationRun
    recommendations: list[Recommendation] = field(default_factory=list)


class RecommendationService:
    """Generate, list, inspect and act on a user's recommendations.

    Args:
        conn:     Open connection for the whole request.
        config:   Application configuration.
        partners: Partner lookup; defaults to ``build_partner_lookup(conn, config)``.
        analyses: Analysis source; defaults to the local ``analyses`` table.
        catalog:  Rule catalog; defaults to ``build_default_catalog()``.
        matcher:  Indicator matcher for the default catalog.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: AppConfig,
        partners: Optional[PartnerLookup] = None,
        analyses: Optional[AnalysisSource] = None,
        catalog: Optional[tuple[Rule, ...]] = None,
        matcher: Optional[IndicatorMatcher] = None,
    ) -> None:
        engine = config.engine
        self._conn = conn
        self._config = config
        if catalog is None:
            catalog = build_default_catalog(
                matcher or SubstringIndicatorMatcher(),
                multiple_abnormal_threshold=engine.multiple_abnormal_threshold,
                partner_limit=engine.partner_lookup_limit,
            )
        self._evaluator = RuleEvaluator(
            catalog,
            analyses if analyses is not None else AnalysisRepository(conn),
            partners if partners is not None else build_partner_lookup(conn, config),
            recent_limit=engine.recent_analysis_limit,
        )
        self._store = RecommendationStore(conn, expiry_days=engine.expiry_days)
        self._recorder = InteractionRecorder(conn)
        self._runs = GenerationRunRepository(conn)

    # ── Generation ─────────────────────────────────────────────────────────────

    async def generate(
        self,
        user_id: str,
        analysis_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> GenerationResult:
        """Evaluate, rank and persist recommendations for ``user_id``.

        Rule and parse failures never fail the run; only an unresolvable
        ``analysis_id`` does.

        Raises:
            NotFound: If ``analysis_id`` is unknown or owned by another user.
        """
        run = GenerationRun(
            run_slug=str(uuid4()),
            user_id=user_id,
            analysis_id=analysis_id,
            started_at=utcnow(),
        )
        run.run_id = self._runs.insert_run(run)
        self._conn.commit()

        with log_context(user_id=user_id, run_slug=run.run_slug, analysis_id=analysis_id):
            logger.info("Generation starting")
            try:
                evaluation = await self._evaluator.run(user_id, analysis_id)
                ranked = rank(evaluation.drafts)
                created = self._store.persist(user_id, ranked, now=now)
            except BaseException as exc:
                # Includes CancelledError, so no run row is left at "started".
                run.status = "failed"
                run.error_message = str(exc) or type(exc).__name__
                run.finished_at = utcnow()
                self._runs.update_run(run)
                self._conn.commit()
                logger.error("Generation FAILED: %s", exc)
                raise

        run.status = "success"
        run.analyses_evaluated = evaluation.analyses_evaluated
        run.drafts_generated = len(evaluation.drafts)
        run.recommendations_created = len(created)
        run.finished_at = utcnow()
        self._runs.update_run(run)
        self._conn.commit()
        logger.info(
            "Generation completed | drafts=%d ranked=%d created=%d | run_slug=%s",
            len(evaluation.drafts), len(ranked), len(created), run.run_slug,
        )
        return GenerationResult(run=run, recommendations=created)

    # ── Reads ──────────────────────────────────────────────────────────────────

    def list(
        self,
        user_id: str,
        type: Optional[RecommendationType] = None,
        status: Optional[RecommendationStatus] = RecommendationStatus.ACTIVE,
        limit: Optional[int] = None,
        include_expired: bool = False,
    ) -> list[Recommendation]:
        return self._store.list_active(
            user_id,
            type=type,
            status=status,
            include_expired=include_expired,
            limit=limit or self._config.api.default_list_limit,
        )

    def get(self, rec_id: int, user_id: Optional[str] = None) -> Recommendation:
        return self._store.get(rec_id, user_id)

    def list_interactions(self, rec_id: int, user_id: Optional[str] = None) -> list[InteractionEvent]:
        """Event log of one recommendation; ownership is checked when ``user_id`` is given."""
        self._store.get(rec_id, user_id)
        return self._recorder.list_interactions(rec_id)

    def recent_runs(self, user_id: Optional[str] = None, limit: int = 20) -> list[GenerationRun]:
        return self._runs.get_recent_runs(user_id, limit=limit)

    # ── Writes ─────────────────────────────────────────────────────────────────

    def interact(
        self,
        rec_id: int,
        action: InteractionAction | str,
        metadata: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> RecommendationStatus:
        """Apply ``action``; a rejected action is still committed to the event log.

        Raises:
            NotFound:          Unknown id, or owned by another user.
            InvalidTransition: After the event row has been committed.
        """
        try:
            return self._recorder.interact(rec_id, action, metadata=metadata, user_id=user_id)
        except InvalidTransition:
            # Callers roll back on exceptions; the event must outlive that.
            self._conn.commit()
            raise

    def cleanup_duplicates(self, user_id: Optional[str] = None) -> int:
        return self._store.cleanup_duplicates(user_id)
