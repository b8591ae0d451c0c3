"""
Cached Fact Resolver - Read-Through Cache for Provider Facts.

Wraps a provider call with a cache lookup by person or organization
identity.

Design Notes:
    - A hit is accepted only when fresh and the needed field is present
    - Misses, stale and incomplete records call the provider once, with
      one retry after a fixed backoff through the ErrorHandler
    - Successful fetches are written through with a column-scoped upsert
    - CacheError on read or write is logged and bypassed, never fatal
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from enrichment_funnel.caching.cache_store import CacheRecord, CacheStats, is_stale, utcnow
from enrichment_funnel.interfaces.storage import CacheStoreProtocol
from enrichment_funnel.resilience.error_handler import ErrorHandler, RetryConfig
from enrichment_funnel.resilience.errors import CacheError

logger = logging.getLogger(__name__)

FetchFunc = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ResolvedFact:
    """Fields served for one key and where they came from."""

    fields: Dict[str, Any] = field(default_factory=dict)
    source: str = "provider"

    @property
    def from_cache(self) -> bool:
        return self.source == "cache"


class CachedFactResolver:
    """
    Read-through/write-through cache in front of a provider call.

    Usage:
        resolver = CachedFactResolver(orgs_cache, staleness_days=90)
        fact = await resolver.resolve(
            org_id, "india_headcount", fetch=lambda: provider_call(org_id)
        )
    """

    def __init__(
        self,
        cache: CacheStoreProtocol,
        error_handler: Optional[ErrorHandler] = None,
        staleness_days: float = 90,
        clock: Optional[Callable[[], datetime]] = None,
        name: str = "cache",
    ) -> None:
        """
        Initialize resolver.

        Args:
            cache: Cache collaborator
            error_handler: Retry policy for provider calls
            staleness_days: Maximum accepted record age
            clock: Reference time source for staleness
            name: Label used in logs
        """
        self.cache = cache
        self.error_handler = error_handler or ErrorHandler(RetryConfig())
        self.staleness_days = staleness_days
        self.name = name
        self._clock = clock or utcnow
        self._stats = CacheStats()

    async def resolve(
        self,
        key: str,
        required_field: str,
        fetch: FetchFunc,
        operation: str = "provider call",
    ) -> ResolvedFact:
        """
        Serve fields for key from cache or provider.

        Args:
            key: Person or organization identity
            required_field: Field a cached record must carry to be usable
            fetch: Provider call returning the stage-owned columns
            operation: Name for logging

        Returns:
            ResolvedFact with the fields and their source

        Raises:
            RetryExhausted: When the provider fails on every attempt
        """
        record = await self._read(key)
        if record is not None:
            if is_stale(record, self.staleness_days, self._clock()):
                self._stats.stale += 1
                logger.debug(f"{self.name}: stale record for {key}")
            elif not record.has_field(required_field):
                self._stats.misses += 1
                logger.debug(f"{self.name}: record for {key} lacks {required_field}")
            else:
                self._stats.hits += 1
                logger.debug(f"Cache HIT for {operation}: {key}")
                return ResolvedFact(fields=dict(record.fields), source="cache")
        else:
            self._stats.misses += 1
            logger.debug(f"Cache MISS for {operation}: {key}")

        fields = await self.error_handler.retry(fetch, operation_name=f"{operation} for {key}")
        await self._write(key, fields)
        return ResolvedFact(fields=dict(fields), source="provider")

    async def _read(self, key: str) -> Optional[CacheRecord]:
        try:
            return await self.cache.get(key)
        except CacheError as e:
            self._stats.errors += 1
            logger.warning(f"{self.name}: lookup failed for {key}, bypassing cache: {e}")
            return None

    async def _write(self, key: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        try:
            await self.cache.upsert(key, fields)
            self._stats.writes += 1
        except CacheError as e:
            self._stats.errors += 1
            logger.warning(f"{self.name}: upsert failed for {key}: {e}")

    def get_stats(self) -> CacheStats:
        """Get a copy of the lookup statistics."""
        return CacheStats(
            hits=self._stats.hits,
            misses=self._stats.misses,
            stale=self._stats.stale,
            writes=self._stats.writes,
            errors=self._stats.errors,
        )
