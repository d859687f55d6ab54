"""
Deduplicator and ranker for recommendation drafts.

``rank(drafts)``:
  1. Keeps the first draft for each ``(type, title, partner_entity_id)`` key;
     later duplicates are dropped even if they carry a higher priority.
  2. Stable-sorts the survivors by priority, highest first, so equal
     priorities keep their evaluation order.

Pure function, no DB or I/O.
"""

from __future__ import annotations

from selfcare_recommender.models.recommendation import DedupKey, RecommendationDraft


def dedupe(drafts: list[RecommendationDraft]) -> list[RecommendationDraft]:
    """Drop every draft whose dedup key was already seen."""
    seen: set[DedupKey] = set()
    unique: list[RecommendationDraft] = []
    for draft in drafts:
        key = draft.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(draft)
    return unique


def rank(drafts: list[RecommendationDraft]) -> list[RecommendationDraft]:
    """Deduplicate, then order by priority descending (stable)."""
    return sorted(dedupe(drafts), key=lambda d: d.priority, reverse=True)
