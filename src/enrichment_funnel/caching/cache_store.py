"""
Cache Store - Keyed Facts with Staleness Semantics.

Holds per-person or per-organization facts fetched from rate-limited
providers so that later runs can reuse them.

Design Notes:
    - Freshness is judged by age, from updated_at falling back to created_at
    - Upserts are column-scoped: only the given fields are written
    - Last writer wins; there is no optimistic concurrency control
    - Thread-safe with RLock
    - Backend failures surface as CacheError
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from enrichment_funnel.resilience.errors import CacheError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class CacheRecord:
    """A cached set of facts keyed by person or organization identity."""

    key: str
    fields: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has_field(self, name: str) -> bool:
        """A field counts as present when it is set and not None."""
        return self.fields.get(name) is not None

    def age(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Age of the record, or None when it carries no timestamp."""
        stamp = self.updated_at or self.created_at
        if stamp is None:
            return None
        return _as_aware(now or utcnow()) - _as_aware(stamp)


def is_stale(
    record: CacheRecord,
    threshold_days: float,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether a cached record must be refreshed.

    Args:
        record: Cached record
        threshold_days: Maximum accepted age in days
        now: Reference time (default: current UTC time)

    Returns:
        True when the record is at least threshold_days old or has no
        timestamp at all
    """
    age = record.age(now)
    if age is None:
        return True
    return age >= timedelta(days=threshold_days)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    stale: int = 0
    writes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses + self.stale
        return self.hits / total if total > 0 else 0.0


class InMemoryCacheStore:
    """
    In-memory cache collaborator.

    Features:
        - Thread-safe with reentrant lock
        - Column-scoped upsert stamping created_at/updated_at
        - Returns copies so callers cannot mutate stored records
    """

    def __init__(
        self,
        name: str = "cache",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize cache store.

        Args:
            name: Table name used in log messages
            clock: Time source for timestamps
        """
        self.name = name
        self._clock = clock or utcnow
        self._records: Dict[str, CacheRecord] = {}
        self._lock = threading.RLock()
        self._writes = 0

    async def get(self, key: str) -> Optional[CacheRecord]:
        """
        Get a record.

        Returns:
            Copy of the record or None if not found
        """
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return copy.deepcopy(record)

    async def upsert(self, key: str, fields: Dict[str, Any]) -> None:
        """
        Insert or update only the given columns of a record.

        Columns not named in fields are left untouched.

        Raises:
            CacheError: When fields is not a mapping or cannot be copied
        """
        if not isinstance(fields, Mapping):
            raise CacheError(f"{self.name}: fields for {key} must be a mapping")
        try:
            stored = copy.deepcopy(dict(fields))
        except (TypeError, copy.Error) as e:
            raise CacheError(f"{self.name}: cannot store fields for {key}: {e}") from e
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = CacheRecord(key=key, created_at=now)
                self._records[key] = record
            record.fields.update(stored)
            record.updated_at = now
            self._writes += 1
        logger.debug(f"{self.name}: upserted {sorted(fields)} for {key}")

    def seed(self, record: CacheRecord) -> None:
        """Store a record as-is, keeping its timestamps."""
        with self._lock:
            self._records[record.key] = copy.deepcopy(record)

    @property
    def write_count(self) -> int:
        with self._lock:
            return self._writes

    def clear(self) -> None:
        """Clear all records."""
        with self._lock:
            self._records.clear()
            self._writes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
