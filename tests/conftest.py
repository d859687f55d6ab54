"""
Shared pytest fixtures for the self-care recommender test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema and every migration applied. Created anew for each test that requests it.
  - ``seeded_db``: ``in_memory_db`` plus one active partner of every type.
  - ``app_config``: Default ``AppConfig`` (no file or env lookups).
  - Sample analysis results and an in-memory ``PartnerLookup``.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional

import pytest

from selfcare_recommender.config import AppConfig
from selfcare_recommender.db.repositories.analysis_repo import AnalysisRepository
from selfcare_recommender.db.repositories.partner_repo import PartnerRepository
from selfcare_recommender.db.connection import initialize_database
from selfcare_recommender.models.directory import Analysis, Partner
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    AnalysisStatus,
    PartnerType,
)

# Partner ids used by ``seeded_db`` and ``static_partners``.
PARTNER_IDS: dict[PartnerType, int] = {
    PartnerType.CLINIC: 1,
    PartnerType.LABORATORY: 2,
    PartnerType.PHARMACY: 3,
    PartnerType.HEALTH_STORE: 4,
    PartnerType.NUTRITIONIST: 5,
}


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection, fully initialized.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    initialize_database(conn)
    yield conn
    conn.close()


@pytest.fixture
def seeded_db(in_memory_db: sqlite3.Connection) -> sqlite3.Connection:
    """``in_memory_db`` with one active, verified partner per partner type."""
    repo = PartnerRepository(in_memory_db)
    for partner_type, partner_id in PARTNER_IDS.items():
        repo.insert(Partner(
            partner_id=partner_id,
            name=f"Test {partner_type.value.title()}",
            partner_type=partner_type,
            is_verified=True,
            rating=4.5,
            city="Москва",
        ))
    in_memory_db.commit()
    return in_memory_db


@pytest.fixture
def add_analysis(in_memory_db: sqlite3.Connection) -> Callable[..., int]:
    """Factory inserting an analysis and returning its id."""
    repo = AnalysisRepository(in_memory_db)
    counter = {"n": 0}

    def _add(
        results: Any,
        user_id: str = "user-1",
        status: AnalysisStatus = AnalysisStatus.ABNORMAL,
        created_at: Optional[datetime] = None,
    ) -> int:
        counter["n"] += 1
        return repo.insert(Analysis(
            user_id=user_id,
            title=f"Analysis {counter['n']}",
            status=status,
            results=results,
            created_at=created_at or datetime(2026, 1, counter["n"], 9, 0, tzinfo=timezone.utc),
        ))

    return _add


@pytest.fixture
def app_config() -> AppConfig:
    """Default configuration built without reading TOML or env vars."""
    return AppConfig()


# ── Sample results ────────────────────────────────────────────────────────────

def reading(
    name: str,
    value: float,
    ref_min: Optional[float],
    ref_max: Optional[float],
    is_normal: bool = False,
    unit: str = "",
) -> dict[str, Any]:
    """Build one array-shaped indicator entry."""
    return {
        "name": name,
        "value": value,
        "unit": unit,
        "referenceMin": ref_min,
        "referenceMax": ref_max,
        "isNormal": is_normal,
    }


@pytest.fixture
def glucose_only_results() -> list[dict[str, Any]]:
    return [reading("Глюкоза", 7.2, 3.3, 5.5, unit="ммоль/л")]


@pytest.fixture
def three_abnormal_results() -> list[dict[str, Any]]:
    """Vitamin D low, cholesterol high, glucose high."""
    return [
        reading("Витамин D (25-OH)", 12, 30, 100, unit="нг/мл"),
        reading("Холестерин общий", 6.9, 3.0, 5.2, unit="ммоль/л"),
        reading("Glucose", 6.8, 3.3, 5.5, unit="mmol/L"),
    ]


# ── In-memory partner lookup ──────────────────────────────────────────────────

class StaticPartnerLookup:
    """``PartnerLookup`` returning one fixed partner per type; records calls."""

    def __init__(self, missing: tuple[PartnerType, ...] = ()) -> None:
        self.missing = set(missing)
        self.calls: list[PartnerType] = []

    async def find_partners(
        self,
        partner_type: PartnerType,
        active_only: bool = True,
        limit: int = 3,
    ) -> list[Partner]:
        self.calls.append(partner_type)
        if partner_type in self.missing:
            return []
        return [Partner(
            partner_id=PARTNER_IDS[partner_type],
            name=f"Static {partner_type.value}",
            partner_type=partner_type,
        )]


@pytest.fixture
def static_partners() -> StaticPartnerLookup:
    return StaticPartnerLookup()


@pytest.fixture
def partner_lookup_factory() -> Callable[..., StaticPartnerLookup]:
    """Build a ``StaticPartnerLookup`` with some partner types missing."""
    return StaticPartnerLookup


@pytest.fixture
def make_reading() -> Callable[..., dict[str, Any]]:
    return reading
