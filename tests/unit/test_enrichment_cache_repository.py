"""
Unit tests for grant_discovery/common/repositories/enrichment_cache_repository.py

Tests cache validity rules for both implementations:
- Exact profile-version match
- Expiry (strictly later than now)
- Opportunity timestamp match
- Last-write-wins upserts per (applicant, opportunity)
- Sweep / invalidate / stats maintenance
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from grant_discovery.common.config import Config
from grant_discovery.common.repositories import (
    InMemoryEnrichmentCacheRepository,
    MongoEnrichmentCacheRepository,
    get_enrichment_cache_repository,
)
from grant_discovery.common.repositories.enrichment_cache_repository import normalize_timestamp
from grant_discovery.layer3.schemas import EnrichmentRecord

UPDATED_AT = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)


def _record(opportunity_id: str, score: int = 80) -> EnrichmentRecord:
    return EnrichmentRecord(
        opportunity_id=opportunity_id,
        match_score=score,
        confidence="high",
        fit_summary=f"Fits {opportunity_id}",
    )


class TestInMemoryLookup:
    """Tests for InMemoryEnrichmentCacheRepository.lookup."""

    def test_hit_after_store(self, memory_cache):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])

        hits = memory_cache.lookup("user-1", ["g1", "g2"], 3)

        assert list(hits) == ["g1"]
        assert hits["g1"].match_score == 80

    def test_version_mismatch_is_miss(self, memory_cache):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])

        assert memory_cache.lookup("user-1", ["g1"], 4) == {}
        assert memory_cache.lookup("user-1", ["g1"], 2) == {}

    def test_other_applicant_is_miss(self, memory_cache):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])
        assert memory_cache.lookup("user-2", ["g1"], 3) == {}

    def test_expired_entry_is_miss(self, memory_cache, clock):
        # Arrange
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])

        # Act
        clock.advance(days=7)

        # Assert - expires_at == now is already expired
        assert memory_cache.lookup("user-1", ["g1"], 3) == {}

    def test_entry_valid_just_before_expiry(self, memory_cache, clock):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])
        clock.advance(days=6, hours=23)
        assert "g1" in memory_cache.lookup("user-1", ["g1"], 3)

    def test_opportunity_timestamp_mismatch_is_miss(self, memory_cache):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])

        later = UPDATED_AT + timedelta(hours=1)
        assert memory_cache.lookup("user-1", ["g1"], 3, {"g1": later}) == {}
        assert "g1" in memory_cache.lookup("user-1", ["g1"], 3, {"g1": UPDATED_AT})

    def test_sub_millisecond_difference_still_hits(self, memory_cache):
        """Timestamps compare at millisecond precision (the store keeps no more)."""
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT.replace(microsecond=123456))])
        hits = memory_cache.lookup("user-1", ["g1"], 3, {"g1": UPDATED_AT.replace(microsecond=123999)})
        assert "g1" in hits


class TestInMemoryStore:
    """Tests for upsert semantics."""

    def test_second_store_keeps_one_row_with_later_expiry(self, memory_cache, clock):
        memory_cache.store("user-1", 3, [(_record("g1", 60), UPDATED_AT)])
        first = memory_cache.entries()[0]

        clock.advance(days=2)
        memory_cache.store("user-1", 4, [(_record("g1", 90), UPDATED_AT)])

        assert len(memory_cache) == 1
        second = memory_cache.entries()[0]
        assert second.expires_at > first.expires_at
        assert second.profile_version == 4
        assert second.record.match_score == 90

    def test_store_returns_count(self, memory_cache):
        written = memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT), (_record("g2"), UPDATED_AT)])
        assert written == 2

    def test_store_nothing(self, memory_cache):
        assert memory_cache.store("user-1", 3, []) == 0


class TestInMemoryMaintenance:
    """Tests for sweep, invalidate and stats."""

    def test_sweep_removes_only_expired(self, memory_cache, clock):
        memory_cache.store("user-1", 3, [(_record("old"), UPDATED_AT)])
        clock.advance(days=5)
        memory_cache.store("user-1", 3, [(_record("new"), UPDATED_AT)])
        clock.advance(days=3)

        assert memory_cache.sweep() == 1
        assert [e.opportunity_id for e in memory_cache.entries()] == ["new"]

    def test_invalidate_applicant(self, memory_cache):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT), (_record("g2"), UPDATED_AT)])
        memory_cache.store("user-2", 1, [(_record("g1"), UPDATED_AT)])

        assert memory_cache.invalidate("user-1") == 2
        assert len(memory_cache) == 1

    def test_invalidate_opportunity(self, memory_cache):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT), (_record("g2"), UPDATED_AT)])
        memory_cache.store("user-2", 1, [(_record("g1"), UPDATED_AT)])

        assert memory_cache.invalidate_opportunity("g1") == 2
        assert [e.opportunity_id for e in memory_cache.entries()] == ["g2"]

    def test_stats(self, memory_cache, clock):
        memory_cache.store("user-1", 3, [(_record("g1"), UPDATED_AT)])
        clock.advance(days=6, hours=12)
        memory_cache.store("user-1", 3, [(_record("g2"), UPDATED_AT)])
        memory_cache.store("user-2", 3, [(_record("g3"), UPDATED_AT)])

        assert memory_cache.stats().to_dict() == {"total": 3, "valid": 3, "expiring_soon": 1}
        assert memory_cache.stats("user-2").total == 1


class TestInMemoryConcurrency:
    """Tests for concurrent store/lookup on one (applicant, opportunity) pair."""

    def test_concurrent_stores_leave_one_whole_row(self, memory_cache):
        versions = range(1, 41)
        torn = []

        def write(version):
            memory_cache.store("user-1", version, [(_record("g1", score=version), UPDATED_AT)])
            for v in versions:
                hit = memory_cache.lookup("user-1", ["g1"], v).get("g1")
                if hit is not None and hit.match_score != v:
                    torn.append((v, hit.match_score))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, versions))

        assert torn == []
        assert len(memory_cache) == 1
        survivors = [v for v in versions if memory_cache.lookup("user-1", ["g1"], v)]
        assert len(survivors) == 1
        assert memory_cache.lookup("user-1", ["g1"], survivors[0])["g1"].match_score == survivors[0]

    def test_store_after_concurrent_writes_wins(self, memory_cache):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda v: memory_cache.store("user-1", v, [(_record("g1", score=v), UPDATED_AT)]),
                range(1, 21),
            ))

        memory_cache.store("user-1", 99, [(_record("g1", score=99), UPDATED_AT)])

        assert memory_cache.lookup("user-1", ["g1"], 99)["g1"].match_score == 99
        assert len(memory_cache) == 1


class TestMongoRepository:
    """Tests for MongoEnrichmentCacheRepository with a mocked collection."""

    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def repo(self, collection, clock):
        return MongoEnrichmentCacheRepository(ttl_days=7, clock=clock, mongo_collection=collection)

    def _doc(self, clock, opportunity_id="g1", version=3, updated_at=UPDATED_AT, payload=None):
        return {
            "applicant_id": "user-1",
            "opportunity_id": opportunity_id,
            "profile_version": version,
            "opportunity_updated_at": updated_at,
            "payload": payload if payload is not None else _record(opportunity_id).model_dump(mode="json"),
            "expires_at": clock() + timedelta(days=1),
            "cached_at": clock() - timedelta(days=6),
        }

    def test_requires_uri_without_collection(self):
        with pytest.raises(ValueError):
            MongoEnrichmentCacheRepository(mongodb_uri="")

    def test_lookup_queries_version_and_expiry(self, repo, collection, clock):
        collection.find.return_value = [self._doc(clock)]

        hits = repo.lookup("user-1", ["g1", "g2"], 3)

        assert list(hits) == ["g1"]
        query = collection.find.call_args[0][0]
        assert query["applicant_id"] == "user-1"
        assert query["opportunity_id"] == {"$in": ["g1", "g2"]}
        assert query["profile_version"] == 3
        assert query["expires_at"] == {"$gt": clock()}

    def test_lookup_empty_ids_skips_query(self, repo, collection):
        assert repo.lookup("user-1", [], 3) == {}
        collection.find.assert_not_called()

    def test_lookup_discards_unreadable_payload(self, repo, collection, clock):
        collection.find.return_value = [self._doc(clock, payload={"matchScore": 10})]
        assert repo.lookup("user-1", ["g1"], 3) == {}

    def test_lookup_checks_opportunity_timestamp(self, repo, collection, clock):
        collection.find.return_value = [self._doc(clock)]
        hits = repo.lookup("user-1", ["g1"], 3, {"g1": UPDATED_AT + timedelta(minutes=5)})
        assert hits == {}

    def test_store_upserts_per_pair(self, repo, collection, clock):
        written = repo.store("user-1", 3, [(_record("g1"), UPDATED_AT), (_record("g2"), UPDATED_AT)])

        assert written == 2
        operations = collection.bulk_write.call_args[0][0]
        assert len(operations) == 2
        assert collection.bulk_write.call_args[1] == {"ordered": False}

    def test_store_nothing_skips_write(self, repo, collection):
        assert repo.store("user-1", 3, []) == 0
        collection.bulk_write.assert_not_called()

    def test_sweep_deletes_expired(self, repo, collection, clock):
        collection.delete_many.return_value = MagicMock(deleted_count=4)

        assert repo.sweep() == 4
        collection.delete_many.assert_called_once_with({"expires_at": {"$lte": clock()}})

    def test_invalidate(self, repo, collection):
        collection.delete_many.return_value = MagicMock(deleted_count=2)

        assert repo.invalidate("user-1") == 2
        collection.delete_many.assert_called_once_with({"applicant_id": "user-1"})

    def test_stats(self, repo, collection):
        collection.count_documents.side_effect = [10, 7, 2]
        assert repo.stats("user-1").to_dict() == {"total": 10, "valid": 7, "expiring_soon": 2}


class TestFactory:
    """Tests for get_enrichment_cache_repository."""

    def test_in_memory_without_uri(self, monkeypatch):
        monkeypatch.setattr(Config, "MONGODB_URI", "")
        repo = get_enrichment_cache_repository()

        assert isinstance(repo, InMemoryEnrichmentCacheRepository)
        assert get_enrichment_cache_repository() is repo

    def test_mongo_with_uri(self, monkeypatch):
        monkeypatch.setattr(Config, "MONGODB_URI", "mongodb://localhost:27017")

        with patch("grant_discovery.common.repositories.enrichment_cache_repository.MongoClient") as mock_client:
            repo = get_enrichment_cache_repository()

            assert isinstance(repo, MongoEnrichmentCacheRepository)
            mock_client.assert_called_once()
            collection = mock_client.return_value.__getitem__.return_value.__getitem__.return_value
            assert collection.create_index.call_count == 2


def test_normalize_timestamp_truncates_to_milliseconds():
    value = datetime(2025, 2, 1, 12, 0, 0, 123999, tzinfo=timezone.utc)
    assert normalize_timestamp(value).microsecond == 123000
    assert normalize_timestamp(value.replace(tzinfo=None)).tzinfo == timezone.utc
