"""
Page Cache Exceptions

Domain-specific exceptions for cache storage and invalidation.
Storage errors are raised by repositories and degraded by callers.
"""

from typing import Optional, Any, Dict
from fastapi import HTTPException


class PageCacheException(Exception):
    """Base exception for page cache errors.

    Always preserve the original error as the cause.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class StorageUnavailableException(PageCacheException):
    """Raised when a storage backend read, write or delete fails."""

    def __init__(
        self,
        operation: str,
        backend: str,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {"operation": operation, "backend": backend}
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=f"Page cache storage '{backend}' failed during {operation}",
            error_code="STORAGE_UNAVAILABLE",
            details=details,
        )
        if original_error:
            self.__cause__ = original_error


class UnresolvableEntityException(PageCacheException):
    """Raised by hosts when an entity or related page has no public URL."""

    def __init__(self, entity_id: str, reason: Optional[str] = None):
        details = {"entity_id": entity_id}
        if reason:
            details["reason"] = reason

        super().__init__(
            message=f"Content entity has no canonical URL: {entity_id}",
            error_code="UNRESOLVABLE_ENTITY",
            details=details,
        )


class UnsafeRewriteTargetException(PageCacheException):
    """Raised when the front-door rewrite config cannot be updated safely."""

    def __init__(
        self,
        target: str,
        reason: str,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {"target": target, "reason": reason}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=f"Cannot install rewrite rules into {target}: {reason}",
            error_code="UNSAFE_REWRITE_TARGET",
            details=details,
        )
        if original_error:
            self.__cause__ = original_error


class CircuitBreakerOpenException(PageCacheException):
    """Raised when cache writes are in cooldown."""

    def __init__(self, retry_after: Optional[float] = None):
        details: Dict[str, Any] = {"service_status": "cooldown"}
        if retry_after is not None:
            details["retry_after_seconds"] = round(retry_after, 2)

        super().__init__(
            message="Page cache writes are suspended (cooldown active)",
            error_code="CACHE_WRITE_COOLDOWN",
            details=details,
        )


# HTTP Exceptions for API layer
class PageCacheHTTPException(HTTPException):
    """HTTP exception wrapper for page cache errors."""

    def __init__(self, cache_exception: PageCacheException, status_code: int = 503):
        self.cache_exception = cache_exception
        super().__init__(
            status_code=status_code,
            detail={
                "error": cache_exception.error_code,
                "message": cache_exception.message,
                "details": cache_exception.details,
            },
        )
