"""
Repository Pattern for cache storage.

Public API:
- get_enrichment_cache_repository(): Factory (MongoDB when MONGODB_URI is set)
- EnrichmentCacheRepositoryInterface: Abstract interface for the enrichment cache
- MongoEnrichmentCacheRepository / InMemoryEnrichmentCacheRepository
- CacheEntry, CacheStats

Usage:
    from grant_discovery.common.repositories import get_enrichment_cache_repository

    cache = get_enrichment_cache_repository()
    records = cache.lookup(applicant.applicant_id, ids, applicant.profile_version)
"""

from .enrichment_cache_repository import (
    CacheEntry,
    CacheStats,
    EnrichmentCacheRepositoryInterface,
    InMemoryEnrichmentCacheRepository,
    MongoEnrichmentCacheRepository,
    get_enrichment_cache_repository,
    reset_enrichment_cache_repository,
)

__all__ = [
    "get_enrichment_cache_repository",
    "reset_enrichment_cache_repository",
    "EnrichmentCacheRepositoryInterface",
    "MongoEnrichmentCacheRepository",
    "InMemoryEnrichmentCacheRepository",
    "CacheEntry",
    "CacheStats",
]
