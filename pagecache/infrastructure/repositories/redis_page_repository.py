"""
Redis Page Cache Repository

TTL store implementation of the page cache repository.
Each page is a Redis hash with a native expiry; keys share a namespace
prefix so purges never touch unrelated data in the same database.
"""

import logging
import time
from typing import Optional, Dict, Any

from redis.exceptions import RedisError

from opentelemetry import trace

from ...domain.cache.entities import CacheEntry
from ...domain.cache.repository_interfaces import PageCacheRepository
from ...domain.cache.value_objects import CacheKey, TTL, BackendKind
from ..exceptions import StorageUnavailableException
from ..redis.connection_factory import RedisConnectionFactory

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_SCAN_BATCH = 500

_FIELD_BODY = b"body"
_FIELD_STORED_AT = b"stored_at"
_FIELD_TTL = b"ttl"


class RedisPageCacheRepository(PageCacheRepository):
    """Redis implementation of the page cache repository."""

    kind = BackendKind.TTL

    def __init__(
        self,
        connection_factory: RedisConnectionFactory,
        namespace: str,
        default_ttl: Optional[TTL] = None,
    ):
        self.connection_factory = connection_factory
        self.namespace = namespace
        self.default_ttl = default_ttl or TTL.default()

    async def initialize(self) -> None:
        await self.connection_factory.initialize()

    async def close(self) -> None:
        await self.connection_factory.close()

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Find a live page by key."""
        try:
            raw = await self.connection_factory.client.hgetall(key.value)
        except (RedisError, OSError) as e:
            logger.warning(f"Failed to read page cache entry {key.value}: {e}")
            raise StorageUnavailableException(
                "get", self.name, key.value, original_error=e
            ) from e

        if not raw:
            return None

        entry = self._deserialize_entry(key, raw)
        if entry is None or entry.is_expired():
            return None
        return entry

    async def put(
        self, key: CacheKey, body: bytes, ttl: Optional[TTL] = None
    ) -> CacheEntry:
        """Store a page with an absolute expiry of now + ttl."""
        entry = CacheEntry.create(key, body, ttl or self.default_ttl)

        try:
            async with self.connection_factory.client.pipeline(
                transaction=True
            ) as pipe:
                pipe.delete(key.value)
                pipe.hset(
                    key.value,
                    mapping={
                        _FIELD_BODY: entry.body,
                        _FIELD_STORED_AT: repr(entry.stored_at),
                        _FIELD_TTL: entry.ttl.seconds,
                    },
                )
                pipe.expire(key.value, entry.ttl.seconds)
                await pipe.execute()

        except (RedisError, OSError) as e:
            logger.error(f"Failed to save page cache entry {key.value}: {e}")
            raise StorageUnavailableException(
                "put", self.name, key.value, original_error=e
            ) from e

        logger.debug(
            f"Saved page cache entry: {key.value}",
            extra={"path": key.path, "size_bytes": entry.size_bytes},
        )
        return entry

    async def delete(self, key: CacheKey) -> bool:
        """Delete a page; absent keys are a no-op."""
        try:
            result = await self.connection_factory.client.delete(key.value)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to delete page cache entry {key.value}: {e}")
            raise StorageUnavailableException(
                "delete", self.name, key.value, original_error=e
            ) from e

        return result > 0

    async def purge_all(self) -> int:
        """Remove every key under this cache's namespace."""
        with tracer.start_as_current_span("page_cache.redis.purge_all") as span:
            span.set_attribute("page_cache.namespace", self.namespace)
            pattern = f"{self.namespace}*"
            count = 0

            try:
                client = self.connection_factory.client
                # Use SCAN for non-blocking iteration
                cursor = 0
                while True:
                    cursor, keys = await client.scan(
                        cursor, match=pattern, count=_SCAN_BATCH
                    )
                    # Use UNLINK for non-blocking deletion
                    if keys:
                        count += await client.unlink(*keys)
                    if cursor == 0:
                        break

            except (RedisError, OSError) as e:
                logger.error(f"Failed to purge page cache namespace {pattern}: {e}")
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise StorageUnavailableException(
                    "purge_all", self.name, pattern, original_error=e
                ) from e

            span.set_attribute("page_cache.purged", count)
            logger.info(
                f"Purged {count} page cache entries",
                extra={"namespace": self.namespace, "count": count},
            )
            return count

    async def health_check(self) -> Dict[str, Any]:
        health = await self.connection_factory.health_check()
        health["backend"] = self.name
        health["namespace"] = self.namespace
        return health

    def _deserialize_entry(self, key: CacheKey, raw: Dict[bytes, bytes]) -> Optional[CacheEntry]:
        """Rebuild an entry from a Redis hash; malformed hashes read as absent."""
        try:
            return CacheEntry(
                key=key,
                body=raw[_FIELD_BODY],
                stored_at=float(raw.get(_FIELD_STORED_AT, time.time())),
                ttl=TTL(int(raw[_FIELD_TTL])) if raw.get(_FIELD_TTL) else None,
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Discarding malformed page cache entry {key.value}: {e}")
            return None
