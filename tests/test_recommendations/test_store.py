"""
Tests for RecommendationStore (uses ``seeded_db`` so partner FKs resolve).

What we test
------------
persist():
  - New rows are ACTIVE with expires_at = created_at + expiry_days.
  - A second persist of the same drafts is fully suppressed.
  - A VIEWED row still blocks its key; a DISMISSED row frees it.
  - A unique-index violation (race past find_live) counts as suppressed.
  - Any other integrity error (unknown partner) skips the draft with a warning.
list_active():
  - Type / status filters, expiry exclusion, priority-then-newest ordering.
get():
  - Scoped by user; unknown or foreign id -> NotFound.
cleanup_duplicates():
  - Deletes older duplicates without history; keeps rows with history.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from selfcare_recommender.db.repositories.recommendation_repo import (
    InteractionRepository,
    RecommendationRepository,
)
from selfcare_recommender.errors import NotFound
from selfcare_recommender.models.recommendation import InteractionEvent, RecommendationDraft
from selfcare_recommender.recommendations.store import RecommendationStore
from selfcare_recommender.taxonomy.recommendation_taxonomy import (
    InteractionAction,
    RecommendationStatus,
    RecommendationType,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _drafts() -> list[RecommendationDraft]:
    return [
        RecommendationDraft(
            type=RecommendationType.CLINIC, title="Консультация эндокринолога",
            priority=5, partner_entity_id=1,
        ),
        RecommendationDraft(
            type=RecommendationType.PHARMACY, title="Препараты железа",
            priority=4, partner_entity_id=3,
        ),
        RecommendationDraft(
            type=RecommendationType.ARTICLE, title="Как питаться при анемии", priority=3,
        ),
    ]


@pytest.fixture
def store(seeded_db) -> RecommendationStore:
    return RecommendationStore(seeded_db, expiry_days=30)


class TestPersist:
    def test_creates_active_rows_with_expiry(self, store):
        created = store.persist("user-1", _drafts(), now=NOW)
        assert len(created) == 3
        for rec in created:
            assert rec.status == RecommendationStatus.ACTIVE
            assert rec.user_id == "user-1"
            assert rec.created_at == NOW
            assert rec.expires_at == NOW + timedelta(days=30)

    def test_custom_expiry_days(self, seeded_db):
        created = RecommendationStore(seeded_db, expiry_days=7).persist("user-1", _drafts()[:1], now=NOW)
        assert created[0].expires_at == NOW + timedelta(days=7)

    def test_second_persist_suppressed(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        again = store.persist("user-1", _drafts(), now=NOW + timedelta(hours=1))
        assert again == []
        assert len(store.list_active("user-1", status=None, now=NOW)) == 3

    def test_other_user_not_suppressed(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        assert len(store.persist("user-2", _drafts(), now=NOW)) == 3

    def test_viewed_row_still_blocks(self, store, seeded_db):
        rec = store.persist("user-1", _drafts()[:1], now=NOW)[0]
        RecommendationRepository(seeded_db).update_status(rec.rec_id, RecommendationStatus.VIEWED)
        assert store.persist("user-1", _drafts()[:1], now=NOW) == []

    def test_dismissed_row_frees_key(self, store, seeded_db):
        rec = store.persist("user-1", _drafts()[:1], now=NOW)[0]
        RecommendationRepository(seeded_db).update_status(rec.rec_id, RecommendationStatus.DISMISSED)
        fresh = store.persist("user-1", _drafts()[:1], now=NOW + timedelta(days=1))
        assert len(fresh) == 1
        assert fresh[0].rec_id != rec.rec_id

    def test_unique_index_violation_counts_as_suppressed(self, store, monkeypatch):
        store.persist("user-1", _drafts(), now=NOW)
        # Simulate a concurrent run that inserted between the check and the insert.
        monkeypatch.setattr(RecommendationRepository, "find_live", lambda self, *args: None)
        assert store.persist("user-1", _drafts(), now=NOW) == []
        assert len(store.list_active("user-1", status=None, now=NOW)) == 3

    def test_unknown_partner_skipped_not_suppressed(self, store, caplog):
        drafts = [
            RecommendationDraft(
                type=RecommendationType.CLINIC, title="Консультация терапевта",
                priority=4, partner_entity_id=999,
            ),
            _drafts()[2],
        ]
        with caplog.at_level("WARNING", logger="selfcare_recommender.recommendations.store"):
            created = store.persist("user-1", drafts, now=NOW)
        assert [r.title for r in created] == ["Как питаться при анемии"]
        assert "Failed to store" in caplog.text


class TestListAndGet:
    def test_ordering_priority_then_newest(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        later = RecommendationDraft(
            type=RecommendationType.LABORATORY, title="Повторный анализ", priority=5, partner_entity_id=2,
        )
        store.persist("user-1", [later], now=NOW + timedelta(minutes=5))
        titles = [r.title for r in store.list_active("user-1", now=NOW + timedelta(minutes=10))]
        assert titles == [
            "Повторный анализ",
            "Консультация эндокринолога",
            "Препараты железа",
            "Как питаться при анемии",
        ]

    def test_type_filter(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        recs = store.list_active("user-1", type=RecommendationType.PHARMACY, now=NOW)
        assert [r.title for r in recs] == ["Препараты железа"]

    def test_status_filter(self, store, seeded_db):
        created = store.persist("user-1", _drafts(), now=NOW)
        RecommendationRepository(seeded_db).update_status(created[0].rec_id, RecommendationStatus.DISMISSED)
        active = store.list_active("user-1", now=NOW)
        dismissed = store.list_active("user-1", status=RecommendationStatus.DISMISSED, now=NOW)
        assert len(active) == 2
        assert [r.rec_id for r in dismissed] == [created[0].rec_id]

    def test_expired_excluded_unless_requested(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        after_expiry = NOW + timedelta(days=31)
        assert store.list_active("user-1", now=after_expiry) == []
        assert len(store.list_active("user-1", include_expired=True, now=after_expiry)) == 3

    def test_limit(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        assert len(store.list_active("user-1", limit=2, now=NOW)) == 2

    def test_get_scoped_to_user(self, store):
        rec = store.persist("user-1", _drafts()[:1], now=NOW)[0]
        assert store.get(rec.rec_id, "user-1").rec_id == rec.rec_id
        assert store.get(rec.rec_id).rec_id == rec.rec_id
        with pytest.raises(NotFound):
            store.get(rec.rec_id, "user-2")

    def test_get_unknown(self, store):
        with pytest.raises(NotFound):
            store.get(12345)


class TestCleanupDuplicates:
    def _make_history(self, store, seeded_db) -> tuple[int, int, int]:
        """Three rows sharing one key: oldest, middle (dismissed each time), newest."""
        repo = RecommendationRepository(seeded_db)
        ids = []
        for hours in (0, 1, 2):
            rec = store.persist("user-1", _drafts()[:1], now=NOW + timedelta(hours=hours))[0]
            ids.append(rec.rec_id)
            if hours < 2:
                repo.update_status(rec.rec_id, RecommendationStatus.DISMISSED)
        return ids[0], ids[1], ids[2]

    def test_deletes_older_without_history(self, store, seeded_db):
        oldest, middle, newest = self._make_history(store, seeded_db)
        assert store.cleanup_duplicates() == 2
        remaining = store.list_active("user-1", status=None, include_expired=True)
        assert [r.rec_id for r in remaining] == [newest]

    def test_keeps_rows_with_history(self, store, seeded_db):
        oldest, middle, newest = self._make_history(store, seeded_db)
        InteractionRepository(seeded_db).insert(InteractionEvent(
            recommendation_id=oldest, action=InteractionAction.DISMISS, created_at=NOW,
        ))
        assert store.cleanup_duplicates("user-1") == 1
        remaining = {r.rec_id for r in store.list_active("user-1", status=None, include_expired=True)}
        assert remaining == {oldest, newest}

    def test_nothing_to_clean(self, store):
        store.persist("user-1", _drafts(), now=NOW)
        assert store.cleanup_duplicates() == 0

    def test_scoped_to_user(self, store, seeded_db):
        self._make_history(store, seeded_db)
        assert store.cleanup_duplicates("user-2") == 0
