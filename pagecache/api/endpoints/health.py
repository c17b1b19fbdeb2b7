"""
Page cache health endpoint.

Probes the storage backend; an unhealthy backend answers 503 so load
balancers and monitors can act on the status code alone.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...constants import APP_NAME, APP_VERSION
from ...services.cache.cache_manager import PageCacheManager
from .cache_admin import get_page_cache, require_admin_token

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"], dependencies=[Depends(require_admin_token)])


@router.get("/health")
async def cache_health(manager: PageCacheManager = Depends(get_page_cache)):
    """Backend health probe."""
    health: Dict[str, Any] = await manager.health_check()
    health.update(
        {
            "service": APP_NAME,
            "version": APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )

    if health["status"] != "healthy":
        logger.warning(f"Page cache backend unhealthy: {health['backend']}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=health)
    return health
