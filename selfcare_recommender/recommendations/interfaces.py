"""
Collaborator protocols the engine depends on.

The partner directory and the analysis store are owned by other services.
The engine only needs the narrow read surface described here; the SQLite
repositories in ``selfcare_recommender.db`` satisfy both protocols, and a
remote client can replace either without touching the rules.
"""

from __future__ import annotations

from typing import Optional, Protocol

from selfcare_recommender.models.directory import Analysis, Partner
from selfcare_recommender.taxonomy.recommendation_taxonomy import PartnerType


class PartnerLookup(Protocol):
    """Async partner directory lookup used by rule generators."""

    async def find_partners(
        self,
        partner_type: PartnerType,
        active_only: bool = True,
        limit: int = 3,
    ) -> list[Partner]:
        """Return up to ``limit`` partners of ``partner_type``, best first."""
        ...


class AnalysisSource(Protocol):
    """Read access to the analysis store."""

    def get_analysis(self, analysis_id: int) -> Optional[Analysis]:
        ...

    def list_recent_abnormal(self, user_id: str, limit: int = 5) -> list[Analysis]:
        """Most recently created abnormal analyses of ``user_id``, newest first."""
        ...
