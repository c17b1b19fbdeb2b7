"""
Capture Session

Per-request hit/miss decision and buffered capture of the rendered page.
"""

import logging
from typing import Optional

from ...domain.cache.entities import CaptureState, CaptureStatus
from ...domain.cache.value_objects import CacheLayerStatus
from ...domain.content.host import RequestContext
from .cache_manager import PageCacheManager

logger = logging.getLogger(__name__)


class CaptureSession:
    """
    Drives one request through UNDECIDED -> SKIPPED | BUFFERING ->
    COMMITTED | DISCARDED.

    A hit ends in COMMITTED with ``cache_hit`` set and nothing is buffered.
    """

    def __init__(self, manager: PageCacheManager):
        self.manager = manager
        self.state = CaptureState()

    async def begin(self, ctx: RequestContext) -> Optional[bytes]:
        """
        Decide before any output is produced.

        Returns:
            The stored page on a hit, otherwise None
        """
        if self.state.status != CaptureStatus.UNDECIDED:
            return None

        reason = self.manager.skip_reason_for(ctx)
        if reason is not None:
            self.state.skip(reason)
            self.manager.record_skip(ctx, reason)
            return None

        key = self.manager.key_for(ctx.path)
        entry = await self.manager.lookup(key)
        if entry is not None:
            self.state.mark_hit(key)
            return entry.body

        self.state.start_buffering(key)
        return None

    def capture(self, chunk: bytes) -> None:
        if self.state.status == CaptureStatus.BUFFERING and chunk:
            self.state.buffer.extend(chunk)

    async def finish(self, still_eligible: bool = True) -> bytes:
        """
        Close the capture and hand back the bytes to send.

        The buffer is stored only when it is non-empty and the request is
        still eligible; the bytes are returned either way.
        """
        body = bytes(self.state.buffer)
        if self.state.status != CaptureStatus.BUFFERING:
            return body

        key = self.state.key
        if not body or not still_eligible:
            self.state.discard()
            logger.info(
                f"Page cache refused output for {key.path}",
                extra={"empty": not body, "still_eligible": still_eligible},
            )
            return body

        if await self.manager.store(key, body):
            self.state.commit()
        else:
            self.state.discard()
        return body

    def decline(self) -> None:
        """Give up on a response that cannot be stored before reading its body."""
        if self.state.status == CaptureStatus.BUFFERING:
            self.state.discard()
            logger.info(
                f"Page cache refused output for {self.state.key.path}",
                extra={"still_eligible": False},
            )

    def abort(self) -> None:
        """Drop the buffer of a request whose execution was aborted."""
        if self.state.status == CaptureStatus.BUFFERING:
            self.state.buffer.clear()
            self.state.discard()
            logger.debug(f"Page cache capture aborted for {self.state.key.path}")

    @property
    def header_value(self) -> Optional[str]:
        """X-Cache value for this request, None when the core stayed out of it."""
        if self.state.status in (CaptureStatus.UNDECIDED, CaptureStatus.SKIPPED):
            return None
        status = CacheLayerStatus.HIT if self.state.cache_hit else CacheLayerStatus.MISS
        return f"{status.value} ({self.manager.backend_name})"
