"""
Page cache services: backend selection, capture and the manager facade.
"""

from .backend_selector import BackendSelector
from .cache_manager import PageCacheManager
from .capture import CaptureSession

__all__ = ["BackendSelector", "PageCacheManager", "CaptureSession"]
