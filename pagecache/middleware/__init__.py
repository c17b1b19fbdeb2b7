"""
HTTP middleware.
"""

from .page_cache import PageCacheMiddleware

__all__ = ["PageCacheMiddleware"]
