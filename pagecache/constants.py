"""
Page Cache Global Constants

Centralized location for constants shared across the package.
"""

APP_NAME = "pagecache"
APP_VERSION = "0.1.0"

# Observability header set on every response the cache core handles
CACHE_STATUS_HEADER = "X-Cache"

# Admin surface
ADMIN_ROUTE_PREFIX = "/_cache"
ADMIN_TOKEN_HEADER = "X-Cache-Admin-Token"

# Static file store layout
STATIC_INDEX_FILENAME = "index.html"

# Rewrite block delimiters inside the front-door server config
REWRITE_BEGIN_MARKER = "# BEGIN pagecache static cache"
REWRITE_END_MARKER = "# END pagecache static cache"

# Whole-page responses only; hits are replayed as text/html
CACHEABLE_CONTENT_TYPES = ("text/html",)

# Requests for files a front-door server can already serve directly
STATIC_ASSET_PATTERN = r"\.(ico|png|jpg|jpeg|gif|css|js|svg)$"
