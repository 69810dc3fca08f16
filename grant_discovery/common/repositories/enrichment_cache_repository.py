"""
Enrichment Cache Repository

Repository interface for the grant_match_cache collection.
Stores generated enrichment records per (applicant, opportunity) with a TTL,
keyed to the applicant's profile version and the opportunity's last-modified
timestamp at generation time.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError
from pymongo import ASCENDING, MongoClient, UpdateOne

from grant_discovery.common.config import Config
from grant_discovery.layer3.schemas import EnrichmentRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# (record, opportunity updated_at at generation time)
CacheWrite = Tuple[EnrichmentRecord, datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_timestamp(value: datetime) -> datetime:
    """
    Coerce to UTC-aware with millisecond precision.

    MongoDB keeps milliseconds only, so both sides of a timestamp equality
    check go through this.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


@dataclass(frozen=True)
class CacheEntry:
    """A stored enrichment plus the keys that decide whether it is still valid."""
    applicant_id: str
    record: EnrichmentRecord
    profile_version: int
    opportunity_updated_at: datetime
    expires_at: datetime
    cached_at: datetime

    @property
    def opportunity_id(self) -> str:
        return self.record.opportunity_id

    def is_valid_for(
        self,
        profile_version: int,
        now: datetime,
        opportunity_updated_at: Optional[datetime] = None,
    ) -> bool:
        if self.expires_at <= now:
            return False
        if self.profile_version != profile_version:
            return False
        if opportunity_updated_at is not None and normalize_timestamp(
            self.opportunity_updated_at
        ) != normalize_timestamp(opportunity_updated_at):
            return False
        return True


@dataclass(frozen=True)
class CacheStats:
    total: int
    valid: int
    expiring_soon: int

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "valid": self.valid, "expiring_soon": self.expiring_soon}


class EnrichmentCacheRepositoryInterface(ABC):
    """
    Abstract interface for the enrichment cache.

    Lookups and stores for different applicants never conflict; a store for
    the same (applicant, opportunity) pair is an atomic last-write-wins upsert.
    """

    @abstractmethod
    def lookup(
        self,
        applicant_id: str,
        opportunity_ids: Sequence[str],
        profile_version: int,
        opportunity_timestamps: Optional[Mapping[str, datetime]] = None,
    ) -> Dict[str, EnrichmentRecord]:
        """
        Fetch valid cached records.

        Args:
            applicant_id: Applicant the records were generated for
            opportunity_ids: Opportunities to look up
            profile_version: Applicant's current profile version (exact match)
            opportunity_timestamps: Current last-modified time per opportunity;
                when given, an entry generated against a different timestamp
                is a miss

        Returns:
            Map of opportunity_id -> record for unexpired, matching entries only
        """
        pass

    @abstractmethod
    def store(
        self,
        applicant_id: str,
        profile_version: int,
        entries: Iterable[CacheWrite],
    ) -> int:
        """
        Upsert one row per (applicant_id, opportunity_id).

        Overwrites the stored version, timestamp and payload, and resets
        expires_at to now + TTL.

        Returns:
            Number of rows written
        """
        pass

    @abstractmethod
    def invalidate(self, applicant_id: str) -> int:
        """Hard-delete every row for the applicant. Returns rows deleted."""
        pass

    @abstractmethod
    def invalidate_opportunity(self, opportunity_id: str) -> int:
        """Hard-delete every row for one opportunity across applicants."""
        pass

    @abstractmethod
    def sweep(self) -> int:
        """Hard-delete all expired rows. Returns rows deleted."""
        pass

    @abstractmethod
    def stats(self, applicant_id: Optional[str] = None) -> CacheStats:
        """Row counts for maintenance tooling (optionally for one applicant)."""
        pass


class MongoEnrichmentCacheRepository(EnrichmentCacheRepositoryInterface):
    """
    MongoDB implementation of the enrichment cache.

    Document shape:
        {applicant_id, opportunity_id, profile_version, opportunity_updated_at,
         payload, expires_at, cached_at}
    """

    _client: Optional[MongoClient] = None

    def __init__(
        self,
        mongodb_uri: Optional[str] = None,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        ttl_days: Optional[int] = None,
        clock: Clock = utc_now,
        mongo_collection: Any = None,
    ):
        """
        Initialize the repository.

        Args:
            mongodb_uri: MongoDB connection string (defaults to Config.MONGODB_URI)
            database: Database name
            collection: Collection name
            ttl_days: Days an entry stays valid after each store
            clock: Returns the current UTC time
            mongo_collection: Pre-built collection handle (skips client creation)
        """
        self._mongodb_uri = mongodb_uri or Config.MONGODB_URI
        self._database = database or Config.ENRICHMENT_CACHE_DATABASE
        self._collection_name = collection or Config.ENRICHMENT_CACHE_COLLECTION
        self._ttl = timedelta(days=ttl_days if ttl_days is not None else Config.CACHE_TTL_DAYS)
        self._clock = clock
        self._collection = mongo_collection

        if self._collection is None and not self._mongodb_uri:
            raise ValueError("MongoDB URI is required")

    def _get_client(self) -> MongoClient:
        """Get or create the MongoDB client (singleton)."""
        if MongoEnrichmentCacheRepository._client is None:
            MongoEnrichmentCacheRepository._client = MongoClient(self._mongodb_uri, tz_aware=True)
            logger.info("Created new MongoDB client for enrichment cache repository")
        return MongoEnrichmentCacheRepository._client

    def _get_collection(self):
        """Get the enrichment cache collection."""
        if self._collection is None:
            client = self._get_client()
            self._collection = client[self._database][self._collection_name]
        return self._collection

    @classmethod
    def reset_connection(cls) -> None:
        """Reset the MongoDB client connection."""
        if cls._client is not None:
            cls._client.close()
            cls._client = None
            logger.info("Enrichment cache repository connection reset")

    def ensure_indexes(self) -> None:
        """Unique pair key for atomic upserts, plus an expiry index for sweeps."""
        collection = self._get_collection()
        collection.create_index(
            [("applicant_id", ASCENDING), ("opportunity_id", ASCENDING)],
            unique=True,
            name="applicant_opportunity_unique",
        )
        collection.create_index("expires_at", name="expires_at")
        logger.info("Enrichment cache indexes ensured")

    def _to_entry(self, doc: Dict[str, Any]) -> Optional[CacheEntry]:
        try:
            record = EnrichmentRecord.model_validate(doc["payload"])
        except (KeyError, ValidationError) as e:
            logger.warning(
                f"Discarding unreadable cache row for {doc.get('opportunity_id')}: {e}"
            )
            return None
        return CacheEntry(
            applicant_id=doc["applicant_id"],
            record=record,
            profile_version=doc["profile_version"],
            opportunity_updated_at=normalize_timestamp(doc["opportunity_updated_at"]),
            expires_at=normalize_timestamp(doc["expires_at"]),
            cached_at=normalize_timestamp(doc["cached_at"]),
        )

    def lookup(
        self,
        applicant_id: str,
        opportunity_ids: Sequence[str],
        profile_version: int,
        opportunity_timestamps: Optional[Mapping[str, datetime]] = None,
    ) -> Dict[str, EnrichmentRecord]:
        if not opportunity_ids:
            return {}

        now = self._clock()
        cursor = self._get_collection().find(
            {
                "applicant_id": applicant_id,
                "opportunity_id": {"$in": list(opportunity_ids)},
                "profile_version": profile_version,
                "expires_at": {"$gt": now},
            }
        )

        results: Dict[str, EnrichmentRecord] = {}
        timestamps = opportunity_timestamps or {}
        for doc in cursor:
            entry = self._to_entry(doc)
            if entry is None:
                continue
            if entry.is_valid_for(profile_version, now, timestamps.get(entry.opportunity_id)):
                results[entry.opportunity_id] = entry.record

        logger.debug(
            f"Cache lookup for {applicant_id} v{profile_version}: "
            f"{len(results)}/{len(opportunity_ids)} hits"
        )
        return results

    def store(
        self,
        applicant_id: str,
        profile_version: int,
        entries: Iterable[CacheWrite],
    ) -> int:
        now = self._clock()
        expires_at = now + self._ttl

        operations = []
        for record, updated_at in entries:
            operations.append(
                UpdateOne(
                    {"applicant_id": applicant_id, "opportunity_id": record.opportunity_id},
                    {
                        "$set": {
                            "profile_version": profile_version,
                            "opportunity_updated_at": normalize_timestamp(updated_at),
                            "payload": record.model_dump(mode="json"),
                            "expires_at": expires_at,
                            "cached_at": now,
                        }
                    },
                    upsert=True,
                )
            )

        if not operations:
            return 0

        # Rows are independent; no cross-row ordering
        self._get_collection().bulk_write(operations, ordered=False)
        logger.info(f"Cached {len(operations)} enrichment(s) for {applicant_id} v{profile_version}")
        return len(operations)

    def invalidate(self, applicant_id: str) -> int:
        result = self._get_collection().delete_many({"applicant_id": applicant_id})
        logger.info(f"Invalidated {result.deleted_count} cache row(s) for {applicant_id}")
        return result.deleted_count

    def invalidate_opportunity(self, opportunity_id: str) -> int:
        result = self._get_collection().delete_many({"opportunity_id": opportunity_id})
        logger.info(f"Invalidated {result.deleted_count} cache row(s) for opportunity {opportunity_id}")
        return result.deleted_count

    def sweep(self) -> int:
        result = self._get_collection().delete_many({"expires_at": {"$lte": self._clock()}})
        logger.info(f"Swept {result.deleted_count} expired cache row(s)")
        return result.deleted_count

    def stats(self, applicant_id: Optional[str] = None) -> CacheStats:
        now = self._clock()
        base: Dict[str, Any] = {"applicant_id": applicant_id} if applicant_id else {}
        collection = self._get_collection()
        return CacheStats(
            total=collection.count_documents(base),
            valid=collection.count_documents({**base, "expires_at": {"$gt": now}}),
            expiring_soon=collection.count_documents(
                {**base, "expires_at": {"$gt": now, "$lte": now + timedelta(hours=24)}}
            ),
        )


class InMemoryEnrichmentCacheRepository(EnrichmentCacheRepositoryInterface):
    """
    Process-local cache keyed by (applicant_id, opportunity_id).

    Used when MONGODB_URI is unset and in tests.
    """

    def __init__(self, ttl_days: Optional[int] = None, clock: Clock = utc_now):
        self._ttl = timedelta(days=ttl_days if ttl_days is not None else Config.CACHE_TTL_DAYS)
        self._clock = clock
        self._rows: Dict[Tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def entries(self) -> List[CacheEntry]:
        with self._lock:
            return list(self._rows.values())

    def lookup(
        self,
        applicant_id: str,
        opportunity_ids: Sequence[str],
        profile_version: int,
        opportunity_timestamps: Optional[Mapping[str, datetime]] = None,
    ) -> Dict[str, EnrichmentRecord]:
        now = self._clock()
        timestamps = opportunity_timestamps or {}
        results: Dict[str, EnrichmentRecord] = {}
        with self._lock:
            for opportunity_id in opportunity_ids:
                entry = self._rows.get((applicant_id, opportunity_id))
                if entry and entry.is_valid_for(profile_version, now, timestamps.get(opportunity_id)):
                    results[opportunity_id] = entry.record
        return results

    def store(
        self,
        applicant_id: str,
        profile_version: int,
        entries: Iterable[CacheWrite],
    ) -> int:
        now = self._clock()
        written = 0
        with self._lock:
            for record, updated_at in entries:
                self._rows[(applicant_id, record.opportunity_id)] = CacheEntry(
                    applicant_id=applicant_id,
                    record=record,
                    profile_version=profile_version,
                    opportunity_updated_at=normalize_timestamp(updated_at),
                    expires_at=now + self._ttl,
                    cached_at=now,
                )
                written += 1
        return written

    def invalidate(self, applicant_id: str) -> int:
        with self._lock:
            doomed = [key for key in self._rows if key[0] == applicant_id]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    def invalidate_opportunity(self, opportunity_id: str) -> int:
        with self._lock:
            doomed = [key for key in self._rows if key[1] == opportunity_id]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [key for key, entry in self._rows.items() if entry.expires_at <= now]
            for key in doomed:
                del self._rows[key]
        return len(doomed)

    def stats(self, applicant_id: Optional[str] = None) -> CacheStats:
        now = self._clock()
        soon = now + timedelta(hours=24)
        with self._lock:
            rows = [
                e for e in self._rows.values()
                if applicant_id is None or e.applicant_id == applicant_id
            ]
        return CacheStats(
            total=len(rows),
            valid=sum(1 for e in rows if e.expires_at > now),
            expiring_soon=sum(1 for e in rows if now < e.expires_at <= soon),
        )


# Singleton instance
_enrichment_cache_repository_instance: Optional[EnrichmentCacheRepositoryInterface] = None


def get_enrichment_cache_repository() -> EnrichmentCacheRepositoryInterface:
    """
    Get the enrichment cache repository instance (singleton).

    MongoDB when MONGODB_URI is configured, in-memory otherwise.
    """
    global _enrichment_cache_repository_instance

    if _enrichment_cache_repository_instance is None:
        if Config.use_mongodb_cache():
            repo = MongoEnrichmentCacheRepository()
            repo.ensure_indexes()
            _enrichment_cache_repository_instance = repo
            logger.info("Initialized MongoDB enrichment cache repository")
        else:
            _enrichment_cache_repository_instance = InMemoryEnrichmentCacheRepository()
            logger.info("Initialized in-memory enrichment cache repository")

    return _enrichment_cache_repository_instance


def reset_enrichment_cache_repository() -> None:
    """Reset the repository singleton."""
    global _enrichment_cache_repository_instance

    if isinstance(_enrichment_cache_repository_instance, MongoEnrichmentCacheRepository):
        MongoEnrichmentCacheRepository.reset_connection()

    _enrichment_cache_repository_instance = None
    logger.info("Enrichment cache repository singleton reset")
