"""
Tests for selfcare_recommender/ingestion/directory_client.py.

All HTTP traffic goes through ``httpx.MockTransport``; no network access.

What we test
------------
- Request shape: path, ``type`` / ``limit`` / ``city`` query params.
- Companies map onto ``Partner`` in the order the service returns them.
- Inactive companies are dropped unless active_only=False; limit applies.
- Entries that fail validation are skipped, the rest still load.
- Non-2xx responses raise httpx.HTTPStatusError.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from selfcare_recommender.ingestion.directory_client import COMPANIES_PATH, HttpPartnerDirectory
from selfcare_recommender.taxonomy.recommendation_taxonomy import PartnerType

_BASE_URL = "http://marketplace.test"

_COMPANIES = [
    {"id": 7, "name": "Инвитро", "type": "LABORATORY", "isActive": True,
     "isVerified": True, "rating": 4.8, "city": "Москва"},
    {"id": 8, "name": "Гемотест", "type": "LABORATORY", "isActive": False,
     "isVerified": True, "rating": 4.6, "city": "Москва"},
    {"id": 9, "name": "KDL", "type": "LABORATORY", "isActive": True,
     "isVerified": False, "rating": None, "city": "Казань"},
]


def _directory(handler, city=None) -> tuple[HttpPartnerDirectory, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpPartnerDirectory(_BASE_URL + "/", city=city, client=client), client


def _lookup(directory, client, partner_type=PartnerType.LABORATORY, **kwargs):
    async def _run():
        async with client:
            return await directory.find_partners(partner_type, **kwargs)

    return asyncio.run(_run())


def _companies_handler(companies, seen: list[httpx.Request] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, json={"companies": companies, "total": len(companies)})

    return handler


class TestRequest:
    def test_query_params(self):
        seen: list[httpx.Request] = []
        directory, client = _directory(_companies_handler(_COMPANIES, seen), city="Москва")
        _lookup(directory, client, limit=2)

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == COMPANIES_PATH
        assert request.url.params["type"] == "LABORATORY"
        assert request.url.params["limit"] == "2"
        assert request.url.params["city"] == "Москва"

    def test_no_city_param_without_city(self):
        seen: list[httpx.Request] = []
        directory, client = _directory(_companies_handler([], seen))
        _lookup(directory, client)
        assert "city" not in seen[0].url.params


class TestParsing:
    def test_active_only_by_default(self):
        directory, client = _directory(_companies_handler(_COMPANIES))
        found = _lookup(directory, client)
        assert [p.partner_id for p in found] == [7, 9]
        assert found[0].is_verified is True
        assert found[0].partner_type == PartnerType.LABORATORY
        assert found[1].rating is None

    def test_inactive_on_request(self):
        directory, client = _directory(_companies_handler(_COMPANIES))
        found = _lookup(directory, client, active_only=False)
        assert [p.partner_id for p in found] == [7, 8, 9]

    def test_limit_applied_client_side(self):
        directory, client = _directory(_companies_handler(_COMPANIES))
        found = _lookup(directory, client, active_only=False, limit=1)
        assert [p.partner_id for p in found] == [7]

    def test_invalid_entries_skipped(self):
        companies = [
            {"id": 1, "name": "Bad type", "type": "SPA"},
            {"id": 2, "name": "Bad rating", "type": "LABORATORY", "rating": 9},
            "garbage",
            {"id": 3, "name": "Fine", "type": "LABORATORY"},
        ]
        directory, client = _directory(_companies_handler(companies))
        found = _lookup(directory, client)
        assert [p.partner_id for p in found] == [3]

    def test_missing_companies_key(self):
        directory, client = _directory(lambda request: httpx.Response(200, json={"total": 0}))
        assert _lookup(directory, client) == []


def test_http_error_raised():
    directory, client = _directory(lambda request: httpx.Response(503, json={"error": "down"}))
    with pytest.raises(httpx.HTTPStatusError):
        _lookup(directory, client)
