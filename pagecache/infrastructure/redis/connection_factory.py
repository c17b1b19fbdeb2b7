"""
Redis Connection Factory

Connection management for the Redis-backed TTL store.
Provides a shared connection pool, health checks and instrumentation.
"""

import asyncio
import logging
import time
from typing import Dict, Any, Optional
from urllib.parse import urlparse

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from opentelemetry.instrumentation.redis import RedisInstrumentor

from ...core.config import Settings

logger = logging.getLogger(__name__)


class RedisConnectionFactory:
    """
    Factory for the page cache Redis client.

    Bodies are stored as raw bytes, so responses are never decoded.
    An unreachable server at startup is logged, not raised: the cache
    degrades to misses until Redis comes back.
    """

    def __init__(self, settings: Settings, client: Optional[Redis] = None):
        self.settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client
        self._owns_client = client is None
        self._initialized = False
        self._lock = asyncio.Lock()

        if self._owns_client:
            try:
                RedisInstrumentor().instrument()
                logger.info("Redis OpenTelemetry instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to enable Redis OpenTelemetry instrumentation: {e}")

    async def initialize(self) -> None:
        """Create the connection pool and probe the server once."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            if self._client is None:
                self._pool = ConnectionPool.from_url(
                    self.settings.REDIS_URL,
                    max_connections=self.settings.REDIS_MAX_CONNECTIONS,
                    socket_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                    socket_connect_timeout=self.settings.REDIS_SOCKET_TIMEOUT,
                    decode_responses=False,
                )
                self._client = Redis(connection_pool=self._pool)

            self._initialized = True
            parsed_url = urlparse(self.settings.REDIS_URL)

            try:
                await self._client.ping()
                logger.info(
                    "Redis connection factory initialized",
                    extra={
                        "host": parsed_url.hostname,
                        "port": parsed_url.port,
                        "max_connections": self.settings.REDIS_MAX_CONNECTIONS,
                    },
                )
            except (RedisError, OSError) as e:
                logger.warning(
                    f"Redis not reachable at startup, page cache will miss until it is: {e}",
                    extra={"host": parsed_url.hostname, "port": parsed_url.port},
                )

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise ConnectionError("Redis connection factory not initialized")
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report latency."""
        health_status: Dict[str, Any] = {
            "status": "unhealthy",
            "timestamp": time.time(),
        }

        if self._client is None:
            health_status["error"] = "Redis connection factory not initialized"
            return health_status

        try:
            start_time = time.time()
            await self._client.ping()
            response_time = time.time() - start_time
            health_status.update(
                {
                    "status": "healthy",
                    "response_time_ms": round(response_time * 1000, 2),
                }
            )
        except (RedisError, OSError) as e:
            logger.warning(f"Redis health check failed: {e}")
            health_status["error"] = str(e)

        return health_status

    async def close(self) -> None:
        """Close the client and pool this factory created."""
        async with self._lock:
            if self._owns_client and self._client is not None:
                await self._client.aclose()
                self._client = None
            if self._pool is not None:
                await self._pool.disconnect()
                self._pool = None
            self._initialized = False

            logger.info("Redis connection factory closed")
