"""
pagecache - whole-page HTTP response cache.

Stores rendered HTML keyed by normalized request path in one of two
interchangeable backends (Redis TTL store or static file tree served by the
front-door web server) and evicts related pages when content changes.
"""

from .constants import APP_VERSION as __version__

__all__ = ["__version__"]
