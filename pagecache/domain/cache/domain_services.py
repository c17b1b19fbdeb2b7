"""
Cache Domain Services

Invalidation fan-out: when content changes, evict the entity's own page
and every listing page that shows it.
"""

import logging
from typing import List, Optional, Awaitable

from opentelemetry import trace

from ..content.host import ContentHost, ContentEntity
from .repository_interfaces import PageCacheRepository
from .value_objects import CacheKey, DEFAULT_NAMESPACE
from ...infrastructure.exceptions import (
    StorageUnavailableException,
    UnresolvableEntityException,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CacheInvalidationService:
    """
    Domain service for content-driven cache invalidation.

    Related pages are the home page, the content type archive, each term
    archive and the author archive. Anything the host cannot resolve is
    skipped.
    """

    def __init__(
        self,
        host: ContentHost,
        repository: PageCacheRepository,
        namespace: str = DEFAULT_NAMESPACE,
    ):
        self.host = host
        self.repository = repository
        self.namespace = namespace

    async def invalidate_entity(
        self,
        entity_id: str,
        reason: str = "content_changed",
        entity: Optional[ContentEntity] = None,
        canonical_url: Optional[str] = None,
    ) -> int:
        """
        Evict the cached pages affected by a change to one entity.

        Args:
            entity_id: Host identifier of the changed entity
            reason: Reason for invalidation (for logging)
            entity: Snapshot taken before the change; required once the
                host can no longer load the entity (deletion)
            canonical_url: Canonical URL resolved before the change

        Returns:
            Number of pages actually evicted
        """
        with tracer.start_as_current_span("page_cache.invalidate_entity") as span:
            span.set_attribute("entity_id", entity_id)
            span.set_attribute("reason", reason)

            if entity is None:
                entity = await self.host.get_entity(entity_id)
            if entity is None or entity.is_revision:
                logger.debug(f"Skipping invalidation for {entity_id}: no live entity")
                return 0

            canonical = canonical_url
            if canonical is None:
                canonical = await self._resolve(
                    self.host.resolve_canonical_url(entity), entity_id
                )
            if canonical is None:
                logger.debug(f"Skipping invalidation for {entity_id}: no canonical URL")
                return 0

            urls = [canonical] + await self.related_urls(entity, exclude=canonical)

            evicted = 0
            for url in urls:
                if await self._evict(url):
                    evicted += 1

            span.set_attribute("evicted_count", evicted)
            logger.info(
                f"Invalidated {evicted} cached pages for entity {entity_id}",
                extra={
                    "entity_id": entity_id,
                    "reason": reason,
                    "urls": urls,
                    "count": evicted,
                },
            )
            return evicted

    async def related_urls(
        self, entity: ContentEntity, exclude: Optional[str] = None
    ) -> List[str]:
        """Listing pages showing the entity, de-duplicated in resolution order."""
        candidates = [await self._resolve(self.host.resolve_home_url(), entity.entity_id)]
        candidates.append(
            await self._resolve(
                self.host.resolve_archive_url(entity.content_type), entity.entity_id
            )
        )
        for term in entity.terms:
            candidates.append(
                await self._resolve(self.host.resolve_term_url(term), entity.entity_id)
            )
        if entity.author_id:
            candidates.append(
                await self._resolve(
                    self.host.resolve_author_url(entity.author_id), entity.entity_id
                )
            )

        seen = {CacheKey.from_url(exclude, self.namespace).value} if exclude else set()
        urls: List[str] = []
        for url in candidates:
            if not url:
                continue
            key = CacheKey.from_url(url, self.namespace).value
            if key in seen:
                continue
            seen.add(key)
            urls.append(url)
        return urls

    async def evict_url(self, url: str) -> bool:
        """Evict one page; failures are logged and reported as not evicted."""
        return await self._evict(url)

    async def _evict(self, url: str) -> bool:
        key = CacheKey.from_url(url, self.namespace)
        try:
            deleted = await self.repository.delete(key)
        except StorageUnavailableException as e:
            logger.warning(
                f"Failed to evict cached page {key.path}: {e.message}",
                extra=e.details,
            )
            return False

        if deleted:
            logger.debug(f"Evicted cached page {key.path}")
        return deleted

    async def _resolve(self, pending: Awaitable[Optional[str]], entity_id: str) -> Optional[str]:
        try:
            return await pending
        except UnresolvableEntityException as e:
            logger.debug(
                f"Unresolvable URL while invalidating {entity_id}: {e.message}",
                extra=e.details,
            )
            return None
