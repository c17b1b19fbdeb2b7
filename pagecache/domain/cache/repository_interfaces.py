"""
Cache Repository Interfaces

Abstract repository interface following the DDD Repository pattern.
Defines the contract both page storage backends implement.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from .entities import CacheEntry
from .value_objects import CacheKey, TTL, BackendKind


class PageCacheRepository(ABC):
    """
    Abstract repository for rendered page storage.

    Implementations raise StorageUnavailableException on I/O failure;
    callers decide how to degrade.
    """

    kind: BackendKind

    @property
    def name(self) -> str:
        """Backend label used in the X-Cache header."""
        return self.kind.value

    async def initialize(self) -> None:
        """Prepare connections or directories."""

    async def close(self) -> None:
        """Release resources."""

    @abstractmethod
    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the live entry for key, or None if absent or expired."""
        pass

    @abstractmethod
    async def put(
        self, key: CacheKey, body: bytes, ttl: Optional[TTL] = None
    ) -> CacheEntry:
        """Store body under key, replacing any previous entry."""
        pass

    @abstractmethod
    async def delete(self, key: CacheKey) -> bool:
        """Remove the entry for key. Returns False if nothing was stored."""
        pass

    @abstractmethod
    async def purge_all(self) -> int:
        """Remove every page cache entry. Returns count removed."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Probe the backend."""
        pass
