"""
Page cache admin API endpoints.

Operator and host controls: purge, manual invalidation, write cooldown,
status and health. Every route requires the admin token header.
"""

import secrets
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ...constants import ADMIN_TOKEN_HEADER
from ...infrastructure.exceptions import StorageUnavailableException, PageCacheHTTPException
from ...services.cache.cache_manager import PageCacheManager

logger = structlog.get_logger()


def get_page_cache(request: Request) -> PageCacheManager:
    manager = getattr(request.app.state, "page_cache", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Page cache is not initialized",
        )
    return manager


async def require_admin_token(
    manager: PageCacheManager = Depends(get_page_cache),
    token: Optional[str] = Header(default=None, alias=ADMIN_TOKEN_HEADER),
) -> None:
    """Constant-time token check; an unset server token disables the API."""
    expected = manager.settings.PAGE_CACHE_ADMIN_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Page cache admin API is disabled",
        )
    if not token or not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected page cache admin request", reason="invalid_token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )


router = APIRouter(dependencies=[Depends(require_admin_token)])


class PurgeResponse(BaseModel):
    """Result of a full purge."""

    status: str = Field(..., description="Always 'purged'")
    removed: int = Field(..., ge=0, description="Number of pages removed")


class InvalidationResponse(BaseModel):
    """Result of a manual entity invalidation."""

    entity_id: str
    evicted: int = Field(..., ge=0, description="Number of pages evicted")


class CooldownResponse(BaseModel):
    """Write guard state after a cooldown trigger."""

    status: str
    seconds: int
    write_guard: Dict[str, Any]


@router.post("/purge", response_model=PurgeResponse)
async def purge_cache(manager: PageCacheManager = Depends(get_page_cache)):
    """Remove every cached page."""
    try:
        removed = await manager.purge_all()
    except StorageUnavailableException as e:
        logger.error("Page cache purge failed", error=e.message, details=e.details)
        raise PageCacheHTTPException(e) from e

    logger.info("Page cache purged via admin API", removed=removed)
    return PurgeResponse(status="purged", removed=removed)


@router.post("/invalidate/{entity_id}", response_model=InvalidationResponse)
async def invalidate_entity(
    entity_id: str, manager: PageCacheManager = Depends(get_page_cache)
):
    """Run the invalidation fan-out for one entity."""
    evicted = await manager.invalidate_entity(entity_id, reason="admin")
    return InvalidationResponse(entity_id=entity_id, evicted=evicted)


@router.post("/cooldown", response_model=CooldownResponse)
async def start_cooldown(
    seconds: int = Query(..., ge=1, le=86400, description="Cooldown duration in seconds"),
    manager: PageCacheManager = Depends(get_page_cache),
):
    """Suspend cache writes for a period."""
    await manager.start_cooldown(seconds, reason="admin")
    return CooldownResponse(
        status="cooldown",
        seconds=seconds,
        write_guard=manager.write_guard.get_status(),
    )


@router.get("/status")
async def cache_status(manager: PageCacheManager = Depends(get_page_cache)) -> Dict[str, Any]:
    """Backend, counters, write guard and rewrite rule state."""
    return manager.get_stats()
