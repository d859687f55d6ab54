"""
Generation run metadata — the audit log of the engine.

Every ``generate`` call records one ``GenerationRun``: who it was for, which
analysis was requested, how many drafts the rules produced, and how many new
recommendations were stored.

``GenerationRun`` is the **only** model in the system that is NOT frozen —
its counters, ``status``, ``error_message``, and ``finished_at`` are updated
as the run progresses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

VALID_RUN_STATUSES = frozenset({"started", "success", "failed"})


class GenerationRun(BaseModel):
    """One end-to-end recommendation generation run.

    Attributes:
        run_id: Auto-assigned DB PK; ``None`` before insertion.
        run_slug: UUID string for external reference.
        user_id: User the run generated recommendations for.
        analysis_id: Explicitly requested analysis, or ``None`` for "recent".
        status: One of ``VALID_RUN_STATUSES``.
        analyses_evaluated: Number of analyses the evaluator processed.
        drafts_generated: Drafts produced by rules, before dedup.
        recommendations_created: New rows written to the store.
        error_message: Failure description when ``status == "failed"``.
        started_at: Run start time (UTC).
        finished_at: Run end time (UTC), ``None`` while running.
    """

    # Not frozen: counters and status are updated during the run
    model_config = ConfigDict(frozen=False)

    run_id: Optional[int] = None
    run_slug: str
    user_id: str
    analysis_id: Optional[int] = None
    status: str = "started"
    analyses_evaluated: int = 0
    drafts_generated: int = 0
    recommendations_created: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Invalid run status '{v}'. Valid: {sorted(VALID_RUN_STATUSES)}"
            )
        return v
