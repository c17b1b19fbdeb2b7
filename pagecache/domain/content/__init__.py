"""Content host collaborator contract."""

from .host import ContentHost, ContentEntity, RequestContext, TermRef

__all__ = ["ContentHost", "ContentEntity", "RequestContext", "TermRef"]
