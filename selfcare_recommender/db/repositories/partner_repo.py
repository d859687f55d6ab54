"""
Repository for the local partner directory, plus the async adapters the rule
catalog consumes through the ``PartnerLookup`` protocol:

  - ``SqlitePartnerDirectory``     reads the local table.
  - ``MirroringPartnerDirectory``  wraps a remote lookup and keeps the local
                                   table in sync with what it returns.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Optional

from selfcare_recommender.db.repositories.base import BaseRepository
from selfcare_recommender.models.directory import Partner
from selfcare_recommender.taxonomy.recommendation_taxonomy import PartnerType

if TYPE_CHECKING:
    from selfcare_recommender.recommendations.interfaces import PartnerLookup

logger = logging.getLogger(__name__)


class PartnerRepository(BaseRepository):
    """Read/write access to the ``partners`` table."""

    def insert(self, partner: Partner) -> int:
        """Insert a partner and return its ``partner_id``.

        An explicit ``partner.partner_id`` is kept, so directory exports can be
        re-imported with stable ids.
        """
        return self.insert_returning_id(
            """
            INSERT INTO partners (
                partner_id, name, partner_type, is_active, is_verified, rating, city
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                partner.partner_id,
                partner.name,
                partner.partner_type.value,
                int(partner.is_active),
                int(partner.is_verified),
                partner.rating,
                partner.city,
            ),
        )

    def upsert(self, partner: Partner) -> None:
        """Insert or refresh a partner mirrored from a remote directory.

        Raises:
            ValueError: If ``partner.partner_id`` is ``None``.
        """
        if partner.partner_id is None:
            raise ValueError("Cannot upsert a partner without a partner_id.")
        self.execute(
            """
            INSERT INTO partners (
                partner_id, name, partner_type, is_active, is_verified, rating, city
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(partner_id) DO UPDATE SET
                name         = excluded.name,
                partner_type = excluded.partner_type,
                is_active    = excluded.is_active,
                is_verified  = excluded.is_verified,
                rating       = excluded.rating,
                city         = excluded.city;
            """,
            (
                partner.partner_id,
                partner.name,
                partner.partner_type.value,
                int(partner.is_active),
                int(partner.is_verified),
                partner.rating,
                partner.city,
            ),
        )

    def get_by_id(self, partner_id: int) -> Optional[Partner]:
        row = self.fetchone("SELECT * FROM partners WHERE partner_id = ?;", (partner_id,))
        return _row_to_partner(row) if row else None

    def find(
        self,
        partner_type: PartnerType,
        active_only: bool = True,
        limit: int = 3,
        city: Optional[str] = None,
    ) -> list[Partner]:
        """Return partners of one type, best candidates first.

        Ordering: verified first, then rating descending (unrated last), then
        ``partner_id`` ascending so results are deterministic.

        Args:
            partner_type: Directory category to search.
            active_only:  Exclude inactive partners.
            limit:        Maximum rows to return.
            city:         Optional case-insensitive substring filter on city.
        """
        clauses = ["partner_type = ?"]
        params: list[object] = [PartnerType(partner_type).value]
        if active_only:
            clauses.append("is_active = 1")

        rows = self.fetchall(
            f"""
            SELECT * FROM partners
            WHERE {' AND '.join(clauses)}
            ORDER BY is_verified DESC,
                     rating IS NULL, rating DESC,
                     partner_id ASC;
            """,
            tuple(params),
        )
        partners = [_row_to_partner(r) for r in rows]
        # SQLite LOWER() only folds ASCII; city names are mostly Cyrillic.
        if city:
            needle = city.casefold()
            partners = [p for p in partners if needle in (p.city or "").casefold()]
        return partners[:limit]

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM partners;")
        return int(row["n"]) if row else 0


class SqlitePartnerDirectory:
    """``PartnerLookup`` backed by the local ``partners`` table.

    Lookups are plain SQLite reads; the coroutine interface lets a remote
    directory client be dropped in without touching the rules.

    Args:
        conn: Open connection shared with the rest of the request.
        city: Optional location filter applied to every lookup.
    """

    def __init__(self, conn: sqlite3.Connection, city: Optional[str] = None) -> None:
        self._repo = PartnerRepository(conn)
        self._city = city

    async def find_partners(
        self,
        partner_type: PartnerType,
        active_only: bool = True,
        limit: int = 3,
    ) -> list[Partner]:
        partners = self._repo.find(
            partner_type, active_only=active_only, limit=limit, city=self._city
        )
        logger.debug(
            "Partner lookup type=%s city=%s -> %d result(s)",
            partner_type, self._city, len(partners),
        )
        return partners


class MirroringPartnerDirectory:
    """``PartnerLookup`` that mirrors another lookup's results locally.

    Stored recommendations reference ``partners.partner_id``, so partners
    returned by a remote directory are upserted into the local table before
    a rule can attach them. Partners without an id are dropped.

    Args:
        source: The lookup to delegate to (typically ``HttpPartnerDirectory``).
        conn:   Connection the mirrored rows are written to; the caller commits.
    """

    def __init__(self, source: PartnerLookup, conn: sqlite3.Connection) -> None:
        self._source = source
        self._repo = PartnerRepository(conn)

    async def find_partners(
        self,
        partner_type: PartnerType,
        active_only: bool = True,
        limit: int = 3,
    ) -> list[Partner]:
        found = await self._source.find_partners(
            partner_type, active_only=active_only, limit=limit
        )
        mirrored: list[Partner] = []
        for partner in found:
            if partner.partner_id is None:
                logger.warning("Directory returned %s '%s' without an id; skipped.",
                               partner.partner_type, partner.name)
                continue
            self._repo.upsert(partner)
            mirrored.append(partner)
        return mirrored


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_partner(row: sqlite3.Row) -> Partner:
    return Partner(
        partner_id=row["partner_id"],
        name=row["name"],
        partner_type=PartnerType(row["partner_type"]),
        is_active=bool(row["is_active"]),
        is_verified=bool(row["is_verified"]),
        rating=row["rating"],
        city=row["city"],
    )
