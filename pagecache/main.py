"""
Page cache application wiring.

``create_app`` builds a standalone FastAPI application; ``install_page_cache``
attaches the same middleware, admin routes and lifespan to a host
application that mounts its own page routes.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI

from .api.endpoints.cache_admin import router as cache_admin_router
from .api.endpoints.health import router as health_router
from .constants import ADMIN_ROUTE_PREFIX, APP_NAME, APP_VERSION
from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .domain.cache.repository_interfaces import PageCacheRepository
from .domain.cache.value_objects import BackendKind
from .domain.content.host import ContentHost
from .infrastructure.rewrite_rules import RewriteRuleInstaller
from .middleware.page_cache import PageCacheMiddleware
from .services.cache.backend_selector import BackendSelector
from .services.cache.cache_manager import PageCacheManager
from .services.events import ContentChange, ContentEvent, ContentEventDispatcher

logger = structlog.get_logger()


@asynccontextmanager
async def page_cache_lifespan(
    app: FastAPI,
    host: ContentHost,
    settings: Settings,
    backend: Optional[PageCacheRepository] = None,
) -> AsyncIterator[None]:
    """Start the backend, subscribe invalidation, and tear both down on exit."""
    repository = backend or BackendSelector(settings).build()

    rewrite_installer = None
    if repository.kind == BackendKind.STATIC:
        rewrite_installer = RewriteRuleInstaller(
            settings, cache_root=getattr(repository, "cache_root", None)
        )

    manager = PageCacheManager(
        settings, host, repository, rewrite_installer=rewrite_installer
    )
    await manager.initialize()

    async def invalidate_on_change(change: ContentChange) -> None:
        await manager.invalidate_entity(
            change.entity_id,
            reason=change.reason,
            entity=change.entity,
            canonical_url=change.canonical_url,
        )

    events: ContentEventDispatcher = app.state.page_cache_events
    events.subscribe(ContentEvent.CONTENT_CHANGED, invalidate_on_change)
    app.state.page_cache = manager

    logger.info(
        "Page cache started",
        backend=manager.backend_name,
        enabled=settings.PAGE_CACHE_ENABLED,
        environment=settings.ENVIRONMENT,
    )

    try:
        yield
    finally:
        logger.info("Shutting down page cache")
        events.unsubscribe(ContentEvent.CONTENT_CHANGED, invalidate_on_change)
        app.state.page_cache = None
        try:
            await manager.close()
        except Exception as e:
            logger.error("Error during page cache shutdown", error=str(e))


def install_page_cache(
    app: FastAPI,
    host: ContentHost,
    settings: Optional[Settings] = None,
    backend: Optional[PageCacheRepository] = None,
) -> ContentEventDispatcher:
    """
    Attach the page cache to an existing application.

    Must be called before the application starts serving. Returns the event
    dispatcher the host fires content notifications on; it is also kept at
    ``app.state.page_cache_events``.
    """
    settings = settings or get_settings()

    events = ContentEventDispatcher()
    app.state.page_cache_events = events
    app.state.page_cache = None

    app.add_middleware(PageCacheMiddleware)
    app.include_router(cache_admin_router, prefix=ADMIN_ROUTE_PREFIX, tags=["page-cache"])
    app.include_router(health_router, prefix=ADMIN_ROUTE_PREFIX)

    host_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with page_cache_lifespan(app, host, settings, backend):
            async with host_lifespan(app) as state:
                yield state

    app.router.lifespan_context = lifespan
    return events


def create_app(
    host: ContentHost,
    settings: Optional[Settings] = None,
    backend: Optional[PageCacheRepository] = None,
) -> FastAPI:
    """Build a FastAPI application with the page cache installed."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    app = FastAPI(
        title=APP_NAME,
        description="Whole-page HTTP response cache",
        version=APP_VERSION,
        docs_url=f"{ADMIN_ROUTE_PREFIX}/docs" if not settings.is_production else None,
        openapi_url=f"{ADMIN_ROUTE_PREFIX}/openapi.json" if not settings.is_production else None,
        redoc_url=None,
    )
    install_page_cache(app, host, settings=settings, backend=backend)
    return app
