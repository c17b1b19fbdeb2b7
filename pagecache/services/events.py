"""
Content Event Dispatcher

Explicit subscriptions between the content host and the page cache.
Every host notification is normalized to one post-mutation event so each
change triggers exactly one invalidation.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from ..domain.content.host import ContentEntity

logger = logging.getLogger(__name__)


class ContentEvent(str, Enum):
    """Events the core subscribes to."""

    CONTENT_CHANGED = "content_changed"


@dataclass(frozen=True)
class ContentChange:
    """Payload of a CONTENT_CHANGED event."""

    entity_id: str
    reason: str
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    entity: Optional[ContentEntity] = None
    canonical_url: Optional[str] = None


ContentEventHandler = Callable[[ContentChange], Awaitable[None]]


class ContentEventDispatcher:
    """
    Registry of content event subscribers held by the host.

    Handler failures are logged and never propagate back to the host
    operation that fired the event.
    """

    def __init__(self):
        self._subscribers: Dict[ContentEvent, List[ContentEventHandler]] = defaultdict(list)

    def subscribe(self, event: ContentEvent, handler: ContentEventHandler) -> None:
        handlers = self._subscribers[event]
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event: ContentEvent, handler: ContentEventHandler) -> None:
        handlers = self._subscribers[event]
        if handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, event: ContentEvent) -> int:
        return len(self._subscribers[event])

    # Host-facing notifications

    async def on_content_published(self, entity_id: str) -> None:
        """Entity created or updated and persisted."""
        await self.dispatch(
            ContentEvent.CONTENT_CHANGED, ContentChange(entity_id, reason="published")
        )

    async def on_content_deleted(
        self,
        entity_id: str,
        entity: Optional[ContentEntity] = None,
        canonical_url: Optional[str] = None,
    ) -> None:
        """
        Entity removed.

        The host can no longer load a deleted entity, so it passes the
        snapshot it held before deletion and, when it has one, the canonical
        URL resolved at that point.
        """
        await self.dispatch(
            ContentEvent.CONTENT_CHANGED,
            ContentChange(
                entity_id,
                reason="deleted",
                entity=entity,
                canonical_url=canonical_url,
            ),
        )

    async def on_content_status_changed(
        self, entity_id: str, old_status: str, new_status: str
    ) -> None:
        """Publication status transition; no-op transitions are dropped."""
        if old_status == new_status:
            logger.debug(f"Ignoring unchanged status {new_status} for {entity_id}")
            return

        await self.dispatch(
            ContentEvent.CONTENT_CHANGED,
            ContentChange(
                entity_id,
                reason="status_changed",
                old_status=old_status,
                new_status=new_status,
            ),
        )

    async def dispatch(self, event: ContentEvent, change: ContentChange) -> None:
        for handler in list(self._subscribers[event]):
            try:
                await handler(change)
            except Exception as e:
                logger.error(
                    f"Content event handler failed for {change.entity_id}: {e}",
                    extra={"event": event.value, "reason": change.reason},
                )
