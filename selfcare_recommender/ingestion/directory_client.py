"""
Partner directory HTTP client.

Reads partner entities from the marketplace service instead of the local
``partners`` table. Satisfies ``PartnerLookup``, so it can be handed to the
rule catalog unchanged.

Endpoint::

    GET {base_url}/api/marketplace/companies?type=CLINIC&city=...&limit=3

Response body::

    {"companies": [{"id": 1, "name": "...", "type": "CLINIC", "isActive": true,
                    "isVerified": true, "rating": 4.8, "city": "Москва"}, ...],
     "total": 12, "limit": 3, "offset": 0}

The service already orders companies verified-first, then by rating. The
client keeps that order and only drops entries it cannot map onto ``Partner``.

Configuration (config/default.toml ``[directory]`` or env)::

    SELFCARE_REC_DIRECTORY_URL=https://marketplace.example.org

An empty ``base_url`` means "use the local partners table".
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from selfcare_recommender.models.directory import Partner
from selfcare_recommender.taxonomy.recommendation_taxonomy import PartnerType

logger = logging.getLogger(__name__)

COMPANIES_PATH = "/api/marketplace/companies"


class HttpPartnerDirectory:
    """``PartnerLookup`` backed by the marketplace companies endpoint.

    Args:
        base_url: Service root, e.g. ``https://marketplace.example.org``.
        city:     Optional city filter passed to every lookup.
        timeout:  Per-request timeout in seconds.
        client:   Shared ``httpx.AsyncClient``. When omitted, each lookup opens
                  and closes its own client.

    Raises (from ``find_partners``):
        httpx.HTTPStatusError: On a non-2xx response.
        httpx.TransportError:  On connection failures and timeouts.
    """

    def __init__(
        self,
        base_url: str,
        city: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.city = city
        self.timeout = timeout
        self._client = client

    async def find_partners(
        self,
        partner_type: PartnerType,
        active_only: bool = True,
        limit: int = 3,
    ) -> list[Partner]:
        params: dict[str, Any] = {"type": PartnerType(partner_type).value, "limit": limit}
        if self.city:
            params["city"] = self.city

        url = f"{self.base_url}{COMPANIES_PATH}"
        if self._client is not None:
            resp = await self._client.get(url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
        resp.raise_for_status()

        partners = self._parse_companies(resp.json())
        if active_only:
            partners = [p for p in partners if p.is_active]
        logger.debug(
            "Directory lookup type=%s city=%s -> %d partner(s)",
            partner_type, self.city, len(partners),
        )
        return partners[:limit]

    # ── Response parsing ───────────────────────────────────────────────────────

    def _parse_companies(self, data: Any) -> list[Partner]:
        """Map the ``companies`` array onto ``Partner`` models."""
        companies = data.get("companies", []) if isinstance(data, dict) else []
        partners: list[Partner] = []
        for company in companies:
            if not isinstance(company, dict):
                continue
            try:
                partners.append(Partner(
                    partner_id=company.get("id"),
                    name=company.get("name", ""),
                    partner_type=company.get("type"),
                    is_active=company.get("isActive", True),
                    is_verified=company.get("isVerified", False),
                    rating=company.get("rating"),
                    city=company.get("city"),
                ))
            except ValidationError as exc:
                logger.warning(
                    "Skipping directory entry %s: %s", company.get("id"), exc.errors()[0]["msg"]
                )
        return partners
