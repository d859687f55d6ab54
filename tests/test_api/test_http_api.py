"""
Tests for the FastAPI app (selfcare_recommender/api/).

Each test gets its own SQLite file under tmp_path; entering ``TestClient``
runs the lifespan hook, which creates the schema.

What we test
------------
- GET /health.
- POST generate: creates recommendations, second call creates none,
  unknown analysis -> 404.
- GET list: default ACTIVE filter, ``status=ALL``, bad status -> 422,
  limit validation -> 422.
- GET detail: recommendation plus interaction log; other user -> 404.
- POST interact: lifecycle transitions, invalid transition -> 409 and
  still logged, unknown action -> 422, unknown id -> 404.
"""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from selfcare_recommender.api.app import create_app
from selfcare_recommender.config import AppConfig, DatabaseConfig
from selfcare_recommender.db.connection import get_connection
from selfcare_recommender.db.repositories.analysis_repo import AnalysisRepository
from selfcare_recommender.db.repositories.partner_repo import PartnerRepository
from selfcare_recommender.models.directory import Analysis, Partner
from selfcare_recommender.taxonomy.recommendation_taxonomy import AnalysisStatus, PartnerType


@pytest.fixture
def api_config(tmp_path) -> AppConfig:
    return AppConfig(database=DatabaseConfig(db_path=str(tmp_path / "api.db")))


@pytest.fixture
def client(api_config) -> Iterator[TestClient]:
    with TestClient(create_app(api_config)) as test_client:
        yield test_client


@pytest.fixture
def analysis_id(client, api_config, three_abnormal_results) -> int:
    """Seed one partner per type and one abnormal analysis for user-1."""
    with get_connection(api_config.database.db_path) as conn:
        partners = PartnerRepository(conn)
        for i, partner_type in enumerate(PartnerType, start=1):
            partners.insert(Partner(
                partner_id=i, name=f"API {partner_type.value}", partner_type=partner_type,
            ))
        return AnalysisRepository(conn).insert(Analysis(
            user_id="user-1", status=AnalysisStatus.ABNORMAL, results=three_abnormal_results,
        ))


def _generate(client, user_id="user-1", **body):
    return client.post(f"/users/{user_id}/recommendations/generate", json=body or None)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestGenerate:
    def test_generate_creates_ranked(self, client, analysis_id):
        response = _generate(client)
        assert response.status_code == 200
        payload = response.json()
        assert payload["analyses_evaluated"] == 1
        assert payload["drafts_generated"] == 6
        priorities = [r["priority"] for r in payload["created"]]
        assert len(priorities) == 6
        assert priorities == sorted(priorities, reverse=True)

    def test_second_generate_creates_nothing(self, client, analysis_id):
        _generate(client)
        response = _generate(client, analysis_id=analysis_id)
        assert response.status_code == 200
        assert response.json()["created"] == []

    def test_unknown_analysis(self, client, analysis_id):
        response = _generate(client, analysis_id=analysis_id + 100)
        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    def test_user_without_analyses(self, client, analysis_id):
        response = _generate(client, user_id="nobody")
        assert response.status_code == 200
        assert response.json()["created"] == []


class TestList:
    def test_default_lists_active(self, client, analysis_id):
        created = _generate(client).json()["created"]
        client.post(f"/recommendations/{created[0]['rec_id']}/interact", json={"action": "dismiss"})

        active = client.get("/users/user-1/recommendations").json()
        assert active["count"] == 5
        assert all(r["status"] == "ACTIVE" for r in active["recommendations"])

        everything = client.get("/users/user-1/recommendations", params={"status": "all"}).json()
        assert everything["count"] == 6

    def test_type_filter(self, client, analysis_id):
        _generate(client)
        response = client.get("/users/user-1/recommendations", params={"type": "LABORATORY"})
        assert [r["type"] for r in response.json()["recommendations"]] == ["LABORATORY"]

    def test_bad_status(self, client):
        response = client.get("/users/user-1/recommendations", params={"status": "LOST"})
        assert response.status_code == 422

    def test_bad_limit(self, client):
        response = client.get("/users/user-1/recommendations", params={"limit": 0})
        assert response.status_code == 422


class TestDetailAndInteract:
    def test_detail_with_interactions(self, client, analysis_id):
        rec_id = _generate(client).json()["created"][0]["rec_id"]
        client.post(f"/recommendations/{rec_id}/interact", json={"action": "view", "metadata": {"from": "feed"}})

        response = client.get(f"/users/user-1/recommendations/{rec_id}")
        assert response.status_code == 200
        detail = response.json()
        assert detail["recommendation"]["status"] == "VIEWED"
        assert [e["action"] for e in detail["interactions"]] == ["view"]
        assert detail["interactions"][0]["metadata"] == {"from": "feed"}

    def test_detail_other_user(self, client, analysis_id):
        rec_id = _generate(client).json()["created"][0]["rec_id"]
        assert client.get(f"/users/user-2/recommendations/{rec_id}").status_code == 404

    def test_interact_lifecycle(self, client, analysis_id):
        rec_id = _generate(client).json()["created"][0]["rec_id"]
        for action, expected in (("view", "VIEWED"), ("click", "CLICKED"), ("purchase", "PURCHASED")):
            response = client.post(f"/recommendations/{rec_id}/interact", json={"action": action})
            assert response.status_code == 200
            assert response.json() == {"recommendation_id": rec_id, "status": expected}

    def test_invalid_transition(self, client, analysis_id):
        rec_id = _generate(client).json()["created"][0]["rec_id"]
        client.post(f"/recommendations/{rec_id}/interact", json={"action": "dismiss"})
        response = client.post(f"/recommendations/{rec_id}/interact", json={"action": "click"})
        assert response.status_code == 409
        assert response.json()["status"] == "DISMISSED"
        assert response.json()["action"] == "click"
        detail = client.get(f"/users/user-1/recommendations/{rec_id}").json()
        assert [e["action"] for e in detail["interactions"]] == ["dismiss", "click"]

    def test_unknown_action(self, client, analysis_id):
        rec_id = _generate(client).json()["created"][0]["rec_id"]
        response = client.post(f"/recommendations/{rec_id}/interact", json={"action": "share"})
        assert response.status_code == 422

    def test_interact_wrong_owner(self, client, analysis_id):
        rec_id = _generate(client).json()["created"][0]["rec_id"]
        response = client.post(
            f"/recommendations/{rec_id}/interact", json={"action": "view", "user_id": "user-2"}
        )
        assert response.status_code == 404

    def test_interact_unknown_id(self, client):
        response = client.post("/recommendations/999/interact", json={"action": "view"})
        assert response.status_code == 404
