"""
Caching Layer - Provider Fact Cache with Staleness.

Provides the cache collaborator used by stages that fetch per-person or
per-organization facts from paid providers.

Components:
    - CacheRecord: Cached fields plus created_at/updated_at
    - is_stale: Age check against a threshold in days
    - InMemoryCacheStore: Thread-safe store with column-scoped upsert

Design Principles:
    - A miss is never fatal
    - Writes touch only the columns owned by the writing stage
"""

from enrichment_funnel.caching.cache_store import (
    CacheRecord,
    CacheStats,
    InMemoryCacheStore,
    is_stale,
)

__all__ = ["CacheRecord", "CacheStats", "InMemoryCacheStore", "is_stale"]
