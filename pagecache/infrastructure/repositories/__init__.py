"""
Page cache repository implementations.
"""

from .redis_page_repository import RedisPageCacheRepository
from .static_file_repository import StaticFilePageCacheRepository

__all__ = ["RedisPageCacheRepository", "StaticFilePageCacheRepository"]
