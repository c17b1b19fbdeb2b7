"""
Cache Domain Entities

Core domain entities for page caching.
Encapsulates stored pages and the per-request capture state.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

from .value_objects import CacheKey, TTL


@dataclass
class CacheEntry:
    """
    Stored page entity.

    TTL store entries expire at ``stored_at + ttl``; static file entries have
    no TTL and live until they are evicted.
    """

    key: CacheKey
    body: bytes
    stored_at: float
    ttl: Optional[TTL] = None

    @classmethod
    def create(
        cls, key: CacheKey, body: bytes, ttl: Optional[TTL] = None
    ) -> "CacheEntry":
        """Create a new entry stamped with the current time."""
        return cls(key=key, body=body, stored_at=time.time(), ttl=ttl)

    @property
    def expires_at(self) -> Optional[float]:
        if self.ttl is None:
            return None
        return self.stored_at + self.ttl.seconds

    @property
    def size_bytes(self) -> int:
        return len(self.body)

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if cache entry is expired."""
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (now if now is not None else time.time()) >= expires_at


class CaptureStatus(str, Enum):
    """Capture session states."""

    UNDECIDED = "undecided"
    SKIPPED = "skipped"
    BUFFERING = "buffering"
    COMMITTED = "committed"
    DISCARDED = "discarded"


class SkipReason(str, Enum):
    """Why a request bypassed the cache."""

    DISABLED = "disabled"
    CONTROL_CONTEXT = "control_context"
    NON_GET = "non_get"
    API_REQUEST = "api_request"
    AUTHENTICATED = "authenticated"
    STATIC_ASSET = "static_asset"
    QUERY_STRING = "query_string"
    UNSAFE_PATH = "unsafe_path"


@dataclass
class CaptureState:
    """
    Per-request capture state.

    Owned by a single request and dropped when it ends; never shared
    between requests.
    """

    status: CaptureStatus = CaptureStatus.UNDECIDED
    should_cache: bool = False
    cache_hit: bool = False
    key: Optional[CacheKey] = None
    skip_reason: Optional[SkipReason] = None
    buffer: bytearray = field(default_factory=bytearray)

    def skip(self, reason: SkipReason) -> None:
        self.status = CaptureStatus.SKIPPED
        self.should_cache = False
        self.skip_reason = reason

    def start_buffering(self, key: CacheKey) -> None:
        self.status = CaptureStatus.BUFFERING
        self.should_cache = True
        self.key = key

    def mark_hit(self, key: CacheKey) -> None:
        self.status = CaptureStatus.COMMITTED
        self.cache_hit = True
        self.should_cache = False
        self.key = key

    def commit(self) -> None:
        self.status = CaptureStatus.COMMITTED

    def discard(self) -> None:
        self.status = CaptureStatus.DISCARDED
        self.should_cache = False


@dataclass
class CacheStats:
    """Process-local counters reported by the status endpoint."""

    hits: int = 0
    misses: int = 0
    skips: int = 0
    writes: int = 0
    write_failures: int = 0
    writes_suppressed: int = 0
    evictions: int = 0
    purges: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "skips": self.skips,
            "writes": self.writes,
            "write_failures": self.write_failures,
            "writes_suppressed": self.writes_suppressed,
            "evictions": self.evictions,
            "purges": self.purges,
            "hit_rate": round(self.hit_rate, 4),
        }
