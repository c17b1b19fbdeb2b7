"""
Content Host Interface

Contract between the cache core and the content-management host.
The core only reaches the host through this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from starlette.requests import Request

from ...core.config import Settings


@dataclass(frozen=True)
class TermRef:
    """A taxonomy term (category, tag, ...) an entity belongs to."""

    taxonomy: str
    slug: str


@dataclass(frozen=True)
class ContentEntity:
    """Snapshot of a content entity as seen by invalidation."""

    entity_id: str
    content_type: str
    status: str = "published"
    author_id: Optional[str] = None
    terms: Tuple[TermRef, ...] = field(default_factory=tuple)
    is_revision: bool = False


@dataclass(frozen=True)
class RequestContext:
    """What the core needs to know about the current request."""

    path: str
    method: str
    query_string: str = ""
    is_authenticated: bool = False
    is_control_context: bool = False
    is_api_request: bool = False


class ContentHost(ABC):
    """
    Content-management host collaborator.

    Entity resolution is abstract. Request classification has defaults
    driven by settings (path prefixes and auth cookies) that hosts with their
    own session model override.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    # Request classification

    def is_control_context(self, request: Request) -> bool:
        """Administrative area of the host."""
        return _has_prefix(request_path(request), self.settings.control_path_prefixes)

    def is_api_request(self, request: Request) -> bool:
        """Host API / control channel rather than a rendered page."""
        return _has_prefix(request_path(request), self.settings.api_path_prefixes)

    def is_authenticated(self, request: Request) -> bool:
        """Identified callers get personalized pages."""
        if request.headers.get("authorization"):
            return True
        prefixes = self.settings.auth_cookie_prefixes
        return any(
            name.startswith(prefix) for name in request.cookies for prefix in prefixes
        )

    def build_request_context(self, request: Request) -> RequestContext:
        return RequestContext(
            path=request_path(request),
            method=request.method.upper(),
            query_string=request.scope.get("query_string", b"").decode("latin-1"),
            is_authenticated=self.is_authenticated(request),
            is_control_context=self.is_control_context(request),
            is_api_request=self.is_api_request(request),
        )

    # Entity resolution

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Optional[ContentEntity]:
        """Load an entity, or None if it does not exist."""
        pass

    @abstractmethod
    async def resolve_canonical_url(self, entity: ContentEntity) -> Optional[str]:
        """Public URL of the entity, or None if it is not routable."""
        pass

    async def resolve_home_url(self) -> str:
        return "/"

    @abstractmethod
    async def resolve_archive_url(self, content_type: str) -> Optional[str]:
        """Archive listing for a content type; None when it has no public archive."""
        pass

    @abstractmethod
    async def resolve_term_url(self, term: TermRef) -> Optional[str]:
        pass

    @abstractmethod
    async def resolve_author_url(self, author_id: str) -> Optional[str]:
        pass


def _has_prefix(path: str, prefixes: Sequence[str]) -> bool:
    for prefix in prefixes:
        prefix = prefix.rstrip("/")
        if not prefix:
            continue
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def request_path(request: Request) -> str:
    """
    Decoded path exactly as the router matched it.

    ``request.url`` is rebuilt from this value and reparses a decoded "#"
    or "?" as a fragment or query, so it is not used for keys.
    """
    return request.scope["path"]
