"""
Cache Value Objects

Immutable value objects for the page cache domain.
Provides key derivation, path sanitization and TTL handling.
"""

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import unquote, urlsplit

DEFAULT_NAMESPACE = "page_cache:"

# 128-bit digest rendered as hex
KEY_DIGEST_CHARS = 32

_ABSOLUTE_URL = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9/_\-]")
_REPEATED_SLASHES = re.compile(r"/{2,}")


class BackendKind(str, Enum):
    """Storage strategy chosen once per process."""

    TTL = "ttl"
    STATIC = "static"


class CacheLayerStatus(str, Enum):
    """Values reported in the X-Cache response header."""

    HIT = "HIT"
    MISS = "MISS"


def normalize_path(path: Optional[str]) -> str:
    """
    Canonical form of a decoded request path.

    The path is taken as given: "?", "#" and leading "//" are ordinary
    characters here. An empty path becomes "/" and trailing slashes are
    removed everywhere except the root.
    """
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path

    stripped = path.rstrip("/")
    return stripped or "/"


def url_to_path(url: Optional[str]) -> str:
    """
    Decoded, normalized path of a URL produced by the content host.

    Absolute URLs lose scheme and host; query string and fragment are
    dropped from absolute and site-relative URLs alike. Percent-escapes are
    decoded so the result compares equal to the request path the server
    routes.
    """
    if not url:
        return "/"

    if _ABSOLUTE_URL.match(url):
        path = urlsplit(url).path
    else:
        path = url.partition("#")[0].partition("?")[0]
    return normalize_path(unquote(path))


def is_filesystem_safe(path: str) -> bool:
    """True when sanitization leaves the normalized path unchanged."""
    normalized = normalize_path(path)
    return sanitize_path(normalized) == normalized.strip("/")


def sanitize_path(path: str) -> str:
    """
    Turn a normalized path into a relative directory name.

    Every character outside [A-Za-z0-9/_-] is removed and empty segments are
    dropped, so dots, backslashes and encoded sequences cannot survive. The
    root path sanitizes to "".
    """
    cleaned = _UNSAFE_PATH_CHARS.sub("", normalize_path(path))
    cleaned = _REPEATED_SLASHES.sub("/", cleaned)
    return cleaned.strip("/")


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    ``value`` is the namespaced digest used by key-value stores; ``path`` is
    the normalized request path the digest was derived from.
    """

    value: str
    path: str = "/"

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValueError("Cache key cannot be empty")

        if len(self.value) > 250:
            raise ValueError("Cache key too long (max 250 characters)")

        # Validate no whitespace in key
        if any(char.isspace() for char in self.value):
            raise ValueError("Cache key cannot contain whitespace")

    @classmethod
    def from_path(cls, path: Optional[str], namespace: str = DEFAULT_NAMESPACE) -> "CacheKey":
        """Derive the key for a decoded request path."""
        normalized = normalize_path(path)
        digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:KEY_DIGEST_CHARS]
        return cls(value=f"{namespace}{digest}", path=normalized)

    @classmethod
    def from_url(cls, url: Optional[str], namespace: str = DEFAULT_NAMESPACE) -> "CacheKey":
        """Derive the key for a URL resolved by the content host."""
        return cls.from_path(url_to_path(url), namespace)

    @property
    def relative_path(self) -> str:
        """Sanitized directory name for filesystem storage."""
        return sanitize_path(self.path)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TTL:
    """
    Time To Live value object for cache expiration.

    Provides type-safe TTL configuration with validation.
    """

    seconds: int

    def __post_init__(self) -> None:
        """Validate TTL value."""
        if self.seconds <= 0:
            raise ValueError("TTL must be positive")
        if self.seconds > 86400 * 365:  # Max 1 year
            raise ValueError("TTL too large (max 1 year)")

    @classmethod
    def hours(cls, hours: int) -> "TTL":
        """Create TTL from hours."""
        return cls(hours * 3600)

    @classmethod
    def default(cls) -> "TTL":
        """Rendered page TTL (12 hours)."""
        return cls.hours(12)

    def __str__(self) -> str:
        return f"{self.seconds}s"
