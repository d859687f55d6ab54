"""
Error taxonomy for the recommendation engine.

  ``ParseError``         — malformed analysis results; logged, that analysis
                           is skipped, evaluation continues.
  ``GenerationError``    — a rule's generator raised; logged, that rule's
                           drafts for that analysis are skipped.
  ``InvalidTransition``  — an interaction is not valid from the current
                           lifecycle status; surfaced to the caller.
  ``NotFound``           — unknown recommendation / analysis id; surfaced.

``ParseError`` and ``GenerationError`` never escape the evaluator; the other
two reach the CLI and HTTP layers.
"""

from __future__ import annotations

from typing import Optional


class RecommendationEngineError(Exception):
    """Base class for all engine errors."""


class ParseError(RecommendationEngineError):
    """Raised when an analysis results blob cannot be decoded.

    Attributes:
        analysis_id: The analysis whose results failed to parse, if known.
    """

    def __init__(self, message: str, analysis_id: Optional[int] = None) -> None:
        self.analysis_id = analysis_id
        super().__init__(message)


class GenerationError(RecommendationEngineError):
    """Wraps an exception raised by a rule generator.

    Attributes:
        rule_name:   Name of the failing rule.
        analysis_id: Analysis being evaluated when the rule failed.
    """

    def __init__(
        self, rule_name: str, analysis_id: Optional[int], cause: BaseException
    ) -> None:
        self.rule_name   = rule_name
        self.analysis_id = analysis_id
        super().__init__(
            f"Rule '{rule_name}' failed for analysis {analysis_id}: {cause}"
        )


class InvalidTransition(RecommendationEngineError):
    """Raised when an action is not allowed from the current status.

    Attributes:
        recommendation_id: The recommendation the action targeted.
        status:            Its current lifecycle status.
        action:            The rejected action.
    """

    def __init__(self, recommendation_id: Optional[int], status: str, action: str) -> None:
        self.recommendation_id = recommendation_id
        self.status            = status
        self.action            = action
        super().__init__(
            f"Action '{action}' is not allowed for recommendation "
            f"{recommendation_id} in status {status}."
        )


class NotFound(RecommendationEngineError):
    """Raised when a recommendation or analysis id does not resolve.

    Attributes:
        entity:    ``"recommendation"`` or ``"analysis"``.
        entity_id: The id that was looked up.
    """

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity    = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found.")
