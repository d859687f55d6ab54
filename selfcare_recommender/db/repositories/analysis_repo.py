"""
Repository for the local analysis store.

``AnalysisRepository`` satisfies the ``AnalysisSource`` protocol directly:
the evaluator calls ``get_analysis`` and ``list_recent_abnormal`` on it.
Results are stored verbatim as JSON text and handed back undecoded — parsing
belongs to the indicator normalizer.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Optional

from selfcare_recommender.db.repositories.base import BaseRepository
from selfcare_recommender.models.directory import Analysis
from selfcare_recommender.taxonomy.recommendation_taxonomy import AnalysisStatus
from selfcare_recommender.utils.time_utils import from_db, to_db, utcnow

logger = logging.getLogger(__name__)


class AnalysisRepository(BaseRepository):
    """Read/write access to the ``analyses`` table."""

    def insert(self, analysis: Analysis) -> int:
        """Insert an analysis and return its ``analysis_id``.

        Non-string ``results`` are JSON-encoded; strings are stored as given,
        even when they are not valid JSON.
        """
        results = analysis.results
        if results is not None and not isinstance(results, str):
            results = json.dumps(results, ensure_ascii=False)

        return self.insert_returning_id(
            """
            INSERT INTO analyses (
                analysis_id, user_id, title, status, results, created_at
            ) VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                analysis.analysis_id,
                analysis.user_id,
                analysis.title,
                analysis.status.value,
                results,
                to_db(analysis.created_at or utcnow()),
            ),
        )

    def get_analysis(self, analysis_id: int) -> Optional[Analysis]:
        """Fetch one analysis by id, or ``None``."""
        row = self.fetchone(
            "SELECT * FROM analyses WHERE analysis_id = ?;", (analysis_id,)
        )
        return _row_to_analysis(row) if row else None

    def list_recent_abnormal(self, user_id: str, limit: int = 5) -> list[Analysis]:
        """Return the user's most recently created abnormal analyses, newest first."""
        rows = self.fetchall(
            """
            SELECT * FROM analyses
            WHERE user_id = ? AND status = ?
            ORDER BY created_at DESC, analysis_id DESC
            LIMIT ?;
            """,
            (user_id, AnalysisStatus.ABNORMAL.value, limit),
        )
        return [_row_to_analysis(r) for r in rows]

    def count_for_user(self, user_id: str) -> int:
        row = self.fetchone(
            "SELECT COUNT(*) AS n FROM analyses WHERE user_id = ?;", (user_id,)
        )
        return int(row["n"]) if row else 0


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_analysis(row: sqlite3.Row) -> Analysis:
    return Analysis(
        analysis_id=row["analysis_id"],
        user_id=row["user_id"],
        title=row["title"],
        status=AnalysisStatus(row["status"]),
        results=row["results"],
        created_at=from_db(row["created_at"]),
    )
