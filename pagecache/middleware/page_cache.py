"""
Page Cache Middleware

Serves stored pages before the route runs and captures rendered pages on
a miss. Cache bookkeeping never prevents a page from being generated.
"""

from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..constants import CACHE_STATUS_HEADER, CACHEABLE_CONTENT_TYPES
from ..domain.cache.entities import CaptureStatus
from ..domain.content.host import ContentHost, request_path
from ..services.cache.capture import CaptureSession

logger = structlog.get_logger()

HTML_MEDIA_TYPE = "text/html; charset=utf-8"


class PageCacheMiddleware(BaseHTTPMiddleware):
    """
    Runs the capture protocol around every request.

    The page cache manager is read from ``app.state.page_cache`` so the
    middleware can be registered before the lifespan has started it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        manager = getattr(request.app.state, "page_cache", None)
        if manager is None:
            return await call_next(request)

        session = CaptureSession(manager)
        try:
            ctx = manager.host.build_request_context(request)
            cached = await session.begin(ctx)
        except Exception as e:
            # Fail open
            logger.error(
                "Page cache lookup failed, serving uncached",
                path=request_path(request),
                error=str(e),
            )
            return await call_next(request)

        if cached is not None:
            logger.debug("Serving cached page", path=request_path(request), backend=manager.backend_name)
            return Response(
                content=cached,
                media_type=HTML_MEDIA_TYPE,
                headers={CACHE_STATUS_HEADER: session.header_value},
            )

        if session.state.status != CaptureStatus.BUFFERING:
            return await call_next(request)

        try:
            response = await call_next(request)
        except Exception:
            session.abort()
            raise

        # Decided from status and headers; ineligible bodies stream through unread
        if not self._still_eligible(request, response, manager.host):
            session.decline()
            response.headers[CACHE_STATUS_HEADER] = session.header_value
            return response

        try:
            async for chunk in response.body_iterator:
                session.capture(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
        except Exception:
            session.abort()
            raise

        body = await session.finish()

        headers = [
            (name, value)
            for name, value in response.raw_headers
            if name.lower() != b"content-length"
        ]
        replay = Response(content=body, status_code=response.status_code)
        replay.raw_headers = headers + [
            (b"content-length", str(len(body)).encode("latin-1"))
        ]
        replay.headers[CACHE_STATUS_HEADER] = session.header_value
        return replay

    def _still_eligible(self, request: Request, response: Response, host: ContentHost) -> bool:
        """Header-only check: an anonymous 200 HTML page that sets no cookie."""
        if response.status_code != 200:
            return False

        content_type = response.headers.get("content-type", "")
        if content_type.split(";")[0].strip().lower() not in CACHEABLE_CONTENT_TYPES:
            return False

        if "set-cookie" in response.headers:
            return False

        try:
            return not host.is_control_context(request) and not host.is_authenticated(request)
        except Exception as e:
            logger.warning(
                "Eligibility re-check failed, not caching",
                path=request_path(request),
                error=str(e),
            )
            return False
