"""
Page Cache Manager Service

Facade over the selected storage backend used by the middleware, the
content event handlers and the admin API. Storage failures stop here:
reads become misses, writes are dropped and evictions are skipped.
"""

import logging
import re
from typing import Optional, Dict, Any

from opentelemetry import trace

from ...constants import STATIC_ASSET_PATTERN
from ...core.config import Settings
from ...domain.cache.domain_services import CacheInvalidationService
from ...domain.cache.entities import CacheEntry, CacheStats, SkipReason
from ...domain.cache.repository_interfaces import PageCacheRepository
from ...domain.cache.value_objects import BackendKind, CacheKey, TTL, is_filesystem_safe
from ...domain.content.host import ContentEntity, ContentHost, RequestContext
from ...infrastructure.circuit_breaker import (
    CircuitBreakerConfig,
    StorageCircuitBreaker,
)
from ...infrastructure.exceptions import (
    CircuitBreakerOpenException,
    StorageUnavailableException,
)
from ...infrastructure.rewrite_rules import RewriteRuleInstaller

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_STATIC_ASSET = re.compile(STATIC_ASSET_PATTERN, re.IGNORECASE)


class PageCacheManager:
    """
    High-level page cache service.

    Owns the backend for the process lifetime, the write guard and the
    process-local stats.
    """

    def __init__(
        self,
        settings: Settings,
        host: ContentHost,
        repository: PageCacheRepository,
        write_guard: Optional[StorageCircuitBreaker] = None,
        rewrite_installer: Optional[RewriteRuleInstaller] = None,
    ):
        self.settings = settings
        self.host = host
        self.repository = repository
        self.namespace = settings.PAGE_CACHE_NAMESPACE
        self.ttl = TTL(settings.PAGE_CACHE_TTL_SECONDS)
        self.write_guard = write_guard or StorageCircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=float(settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT),
            )
        )
        self.rewrite_installer = rewrite_installer
        self.invalidation_service = CacheInvalidationService(
            host, repository, namespace=self.namespace
        )
        self.stats = CacheStats()

    @property
    def backend_kind(self) -> BackendKind:
        return self.repository.kind

    @property
    def backend_name(self) -> str:
        return self.repository.name

    async def initialize(self) -> None:
        """Initialize the backend and, for the static store, the rewrite block."""
        await self.repository.initialize()
        if self.backend_kind == BackendKind.STATIC and self.rewrite_installer:
            await self.rewrite_installer.ensure_installed()
        logger.info(f"Page cache manager initialized with {self.backend_name} backend")

    async def close(self) -> None:
        await self.repository.close()
        logger.info("Page cache manager closed")

    def key_for(self, path: str) -> CacheKey:
        return CacheKey.from_path(path, self.namespace)

    def skip_reason_for(self, ctx: RequestContext) -> Optional[SkipReason]:
        """First rule excluding the request from caching, or None if cacheable."""
        if not self.settings.PAGE_CACHE_ENABLED:
            return SkipReason.DISABLED
        if ctx.is_control_context:
            return SkipReason.CONTROL_CONTEXT
        if ctx.method != "GET":
            return SkipReason.NON_GET
        if ctx.is_api_request:
            return SkipReason.API_REQUEST
        if ctx.is_authenticated:
            return SkipReason.AUTHENTICATED
        if _STATIC_ASSET.search(ctx.path):
            return SkipReason.STATIC_ASSET
        if ctx.query_string and self.settings.PAGE_CACHE_SKIP_QUERY_STRINGS:
            return SkipReason.QUERY_STRING
        if self.backend_kind == BackendKind.STATIC and not is_filesystem_safe(ctx.path):
            return SkipReason.UNSAFE_PATH
        return None

    def record_skip(self, ctx: RequestContext, reason: SkipReason) -> None:
        self.stats.skips += 1
        logger.debug(
            f"Page cache skipped for {ctx.path}: {reason.value}",
            extra={"path": ctx.path, "skip_reason": reason.value},
        )

    async def lookup(self, key: CacheKey) -> Optional[CacheEntry]:
        """Read a page; storage failures read as a miss."""
        with tracer.start_as_current_span("page_cache.lookup") as span:
            span.set_attribute("page_cache.backend", self.backend_name)
            span.set_attribute("page_cache.path", key.path)

            try:
                entry = await self.repository.get(key)
            except StorageUnavailableException as e:
                logger.warning(
                    f"Page cache read failed for {key.path}, treating as miss: {e.message}",
                    extra=e.details,
                )
                span.set_status(trace.Status(trace.StatusCode.ERROR, e.message))
                entry = None

            if entry is None:
                self.stats.misses += 1
                span.set_attribute("page_cache.hit", False)
                logger.info(f"Page cache MISS for {key.path}", extra={"backend": self.backend_name})
                return None

            self.stats.hits += 1
            span.set_attribute("page_cache.hit", True)
            logger.info(f"Page cache HIT for {key.path}", extra={"backend": self.backend_name})
            return entry

    async def store(self, key: CacheKey, body: bytes) -> bool:
        """
        Save a captured page unless writes are in cooldown.

        Returns:
            True if the page was written
        """
        with tracer.start_as_current_span("page_cache.store") as span:
            span.set_attribute("page_cache.backend", self.backend_name)
            span.set_attribute("page_cache.path", key.path)
            span.set_attribute("page_cache.size_bytes", len(body))

            if not body:
                logger.debug(f"Refusing to cache empty output for {key.path}")
                return False

            try:
                await self.write_guard.call(self.repository.put, key, body, self.ttl)
            except CircuitBreakerOpenException as e:
                self.stats.writes_suppressed += 1
                logger.info(
                    f"Page cache write for {key.path} skipped during cooldown",
                    extra=e.details,
                )
                return False
            except StorageUnavailableException as e:
                self.stats.write_failures += 1
                span.set_status(trace.Status(trace.StatusCode.ERROR, e.message))
                logger.error(
                    f"Page cache write failed for {key.path}: {e.message}",
                    extra=e.details,
                )
                return False

            self.stats.writes += 1
            logger.info(
                f"Page cache saved for {key.path}",
                extra={"backend": self.backend_name, "size_bytes": len(body)},
            )
            return True

    async def evict_url(self, url: str) -> bool:
        evicted = await self.invalidation_service.evict_url(url)
        if evicted:
            self.stats.evictions += 1
        return evicted

    async def invalidate_entity(
        self,
        entity_id: str,
        reason: str = "content_changed",
        entity: Optional[ContentEntity] = None,
        canonical_url: Optional[str] = None,
    ) -> int:
        count = await self.invalidation_service.invalidate_entity(
            entity_id, reason, entity=entity, canonical_url=canonical_url
        )
        self.stats.evictions += count
        return count

    async def purge_all(self) -> int:
        """
        Remove every cached page.

        Raises:
            StorageUnavailableException: If the backend could not be purged
        """
        count = await self.repository.purge_all()
        self.stats.purges += 1
        logger.info(
            f"Page cache purged: {count} pages removed",
            extra={"backend": self.backend_name, "count": count},
        )
        return count

    async def start_cooldown(self, seconds: float, reason: str = "manual") -> None:
        """Suspend writes for a period; reads and evictions continue."""
        await self.write_guard.trip(seconds, reason=reason)

    async def health_check(self) -> Dict[str, Any]:
        try:
            backend_health = await self.repository.health_check()
        except Exception as e:
            logger.error(f"Page cache health check failed: {e}")
            backend_health = {"status": "unhealthy", "error": str(e)}

        return {
            "status": backend_health.get("status", "unhealthy"),
            "backend": backend_health,
            "write_guard": self.write_guard.state.value,
        }

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "enabled": self.settings.PAGE_CACHE_ENABLED,
            "backend": self.backend_name,
            "stats": self.stats.to_dict(),
            "write_guard": self.write_guard.get_status(),
        }
        if self.rewrite_installer is not None:
            stats["rewrite_rules"] = self.rewrite_installer.get_status()
        return stats
