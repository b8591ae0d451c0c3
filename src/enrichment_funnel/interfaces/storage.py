"""
Storage Protocols.

Defines the cache collaborator (keyed facts with staleness metadata) and
the persistence collaborator (key/value snapshots for resumability).

Contracts:
    - Cache get returns None for unknown keys; this is never fatal
    - Cache upsert writes only the given columns
    - Cache backends raise CacheError when they cannot be read or written
    - Persistence load returns None for unknown keys
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from enrichment_funnel.caching.cache_store import CacheRecord


@runtime_checkable
class CacheStoreProtocol(Protocol):
    """Keyed store of provider facts."""

    async def get(self, key: str) -> Optional["CacheRecord"]:
        ...

    async def upsert(self, key: str, fields: Dict[str, Any]) -> None:
        ...


@runtime_checkable
class PersistenceProtocol(Protocol):
    """Key/value snapshot store."""

    def save(self, key: str, value: Any) -> None:
        ...

    def load(self, key: str) -> Optional[Any]:
        ...

    def remove(self, key: str) -> None:
        ...
