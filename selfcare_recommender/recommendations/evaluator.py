"""
Rule evaluator: runs the rule catalog over a user's abnormal analyses.

Flow per analysis
-----------------
1. ``parse_results()`` the stored blob. A ``ParseError`` is logged and that
   analysis is skipped; the others still run.
2. Check every rule's ``condition`` against the readings.
3. Run the generators of all matching rules concurrently with
   ``asyncio.gather``. A generator that raises is wrapped in
   ``GenerationError``, logged, and contributes no drafts.
4. Tag each draft with ``analysis_id`` and ``user_id``.

Output is flat and unranked: analyses in source order, and within an analysis
drafts follow catalog order regardless of which generator finished first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from selfcare_recommender.errors import GenerationError, NotFound, ParseError
from selfcare_recommender.models.directory import Analysis
from selfcare_recommender.models.indicator import IndicatorReading
from selfcare_recommender.models.recommendation import RecommendationDraft
from selfcare_recommender.recommendations.interfaces import AnalysisSource, PartnerLookup
from selfcare_recommender.recommendations.normalizer import parse_results
from selfcare_recommender.recommendations.rules import Rule

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Drafts from one evaluation plus the counters the run audit records."""

    drafts: list[RecommendationDraft] = field(default_factory=list)
    analyses_evaluated: int = 0
    analyses_skipped: int = 0
    rule_failures: int = 0


class RuleEvaluator:
    """Evaluate a rule catalog against analyses from an ``AnalysisSource``.

    Args:
        catalog:      Immutable rule tuple (see ``rules.build_default_catalog``).
        analyses:     Analysis store read interface.
        partners:     Partner directory lookup handed to each generator.
        recent_limit: How many recent abnormal analyses to evaluate when no
                      explicit ``analysis_id`` is given.
    """

    def __init__(
        self,
        catalog: tuple[Rule, ...],
        analyses: AnalysisSource,
        partners: PartnerLookup,
        recent_limit: int = 5,
    ) -> None:
        self._catalog = tuple(sorted(catalog, key=lambda r: r.order))
        self._analyses = analyses
        self._partners = partners
        self._recent_limit = recent_limit

    async def evaluate(
        self, user_id: str, analysis_id: Optional[int] = None
    ) -> list[RecommendationDraft]:
        """Return unranked drafts for ``user_id``.

        Raises:
            NotFound: If ``analysis_id`` is unknown or owned by another user.
        """
        result = await self.run(user_id, analysis_id)
        return result.drafts

    async def run(self, user_id: str, analysis_id: Optional[int] = None) -> EvaluationResult:
        """Like ``evaluate()`` but also returns per-run counters."""
        result = EvaluationResult()
        for analysis in self._select_analyses(user_id, analysis_id):
            readings = self._parse(analysis)
            if readings is None:
                result.analyses_skipped += 1
                continue
            result.analyses_evaluated += 1
            drafts, failures = await self._evaluate_readings(analysis, readings, user_id)
            result.drafts.extend(drafts)
            result.rule_failures += failures
        logger.info(
            "Evaluated %d analysis(es) for user %s: %d draft(s), %d skipped, %d rule failure(s)",
            result.analyses_evaluated, user_id, len(result.drafts),
            result.analyses_skipped, result.rule_failures,
        )
        return result

    # ── Internals ──────────────────────────────────────────────────────────────

    def _select_analyses(self, user_id: str, analysis_id: Optional[int]) -> list[Analysis]:
        if analysis_id is None:
            return self._analyses.list_recent_abnormal(user_id, limit=self._recent_limit)

        analysis = self._analyses.get_analysis(analysis_id)
        if analysis is None or analysis.user_id != user_id:
            raise NotFound("analysis", analysis_id)
        if not analysis.is_abnormal:
            logger.info("Analysis %d is not abnormal; nothing to evaluate.", analysis_id)
            return []
        return [analysis]

    def _parse(self, analysis: Analysis) -> Optional[list[IndicatorReading]]:
        try:
            return parse_results(analysis.results, analysis.analysis_id)
        except ParseError as exc:
            logger.warning("Skipping analysis %s: %s", analysis.analysis_id, exc)
            return None

    async def _evaluate_readings(
        self,
        analysis: Analysis,
        readings: list[IndicatorReading],
        user_id: str,
    ) -> tuple[list[RecommendationDraft], int]:
        matching: list[Rule] = []
        failures = 0
        for rule in self._catalog:
            try:
                if rule.condition(readings):
                    matching.append(rule)
            except Exception as exc:
                failures += 1
                logger.warning("%s", GenerationError(rule.name, analysis.analysis_id, exc))

        if not matching:
            return [], failures

        outcomes = await asyncio.gather(
            *(rule.generate(readings, self._partners) for rule in matching),
            return_exceptions=True,
        )

        drafts: list[RecommendationDraft] = []
        for rule, outcome in zip(matching, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                failures += 1
                logger.warning("%s", GenerationError(rule.name, analysis.analysis_id, outcome))
                continue
            for draft in outcome:
                drafts.append(draft.model_copy(update={
                    "analysis_id": analysis.analysis_id,
                    "user_id": user_id,
                }))
        logger.debug(
            "Analysis %s: %d rule(s) matched, %d draft(s)",
            analysis.analysis_id, len(matching), len(drafts),
        )
        return drafts, failures
