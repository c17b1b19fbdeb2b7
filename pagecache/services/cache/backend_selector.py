"""
Backend Selection

Chooses the storage strategy once per process and builds its repository.
"""

import logging
from typing import Optional

from redis.asyncio import Redis

from ...core.config import Settings
from ...domain.cache.repository_interfaces import PageCacheRepository
from ...domain.cache.value_objects import BackendKind, TTL
from ...infrastructure.redis.connection_factory import RedisConnectionFactory
from ...infrastructure.repositories.redis_page_repository import RedisPageCacheRepository
from ...infrastructure.repositories.static_file_repository import (
    StaticFilePageCacheRepository,
)

logger = logging.getLogger(__name__)


class BackendSelector:
    """
    Maps the PAGE_CACHE_BACKEND setting to a storage strategy.

    ``auto`` picks the static store behind Apache, which can honour the
    rewrite block, and the TTL store everywhere else.
    """

    def __init__(self, settings: Settings, redis_client: Optional[Redis] = None):
        self.settings = settings
        self.redis_client = redis_client

    def select(self) -> BackendKind:
        configured = self.settings.PAGE_CACHE_BACKEND
        if configured == BackendKind.TTL.value:
            return BackendKind.TTL
        if configured == BackendKind.STATIC.value:
            return BackendKind.STATIC

        server_software = self.settings.SERVER_SOFTWARE
        kind = BackendKind.STATIC if "apache" in server_software.lower() else BackendKind.TTL
        logger.info(
            f"Page cache backend auto-selected: {kind.value}",
            extra={"server_software": server_software},
        )
        return kind

    def build(self, kind: Optional[BackendKind] = None) -> PageCacheRepository:
        """Create the repository for a strategy (the selected one by default)."""
        kind = kind or self.select()

        if kind == BackendKind.STATIC:
            return StaticFilePageCacheRepository(self.settings.STATIC_CACHE_ROOT)

        connection_factory = RedisConnectionFactory(self.settings, client=self.redis_client)
        return RedisPageCacheRepository(
            connection_factory,
            namespace=self.settings.PAGE_CACHE_NAMESPACE,
            default_ttl=TTL(self.settings.PAGE_CACHE_TTL_SECONDS),
        )
