"""
Static File Page Cache Repository

Filesystem implementation of the page cache repository.
Pages live at {cache_root}/{sanitized path}/index.html so a front-door web
server can serve them without reaching the application.
"""

import asyncio
import contextlib
import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Dict, Any
from uuid import uuid4

import aiofiles
import aiofiles.os

from opentelemetry import trace

from ...constants import STATIC_INDEX_FILENAME
from ...domain.cache.entities import CacheEntry
from ...domain.cache.repository_interfaces import PageCacheRepository
from ...domain.cache.value_objects import CacheKey, TTL, BackendKind
from ..exceptions import StorageUnavailableException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class StaticFilePageCacheRepository(PageCacheRepository):
    """
    Static file implementation of the page cache repository.

    Entries have no TTL: a file that exists is a hit. Writes go to a
    temporary file in the target directory and are renamed into place, so
    readers see either the previous page or the complete new one.
    """

    kind = BackendKind.STATIC

    def __init__(self, cache_root: str):
        self.cache_root = Path(cache_root).resolve()

    async def initialize(self) -> None:
        try:
            await aiofiles.os.makedirs(self.cache_root, exist_ok=True)
            logger.info(f"Static page cache root ready: {self.cache_root}")
        except OSError as e:
            logger.warning(f"Cannot create static page cache root {self.cache_root}: {e}")

    def path_for(self, key: CacheKey) -> Path:
        """File holding the page for key, confined to the cache root."""
        relative = key.relative_path
        directory = self.cache_root / relative if relative else self.cache_root
        target = (directory / STATIC_INDEX_FILENAME).resolve()

        if self.cache_root not in target.parents:
            # Only reachable through symlinks planted inside the cache root
            raise StorageUnavailableException(
                "resolve",
                self.name,
                key.path,
                original_error=PermissionError(f"{target} escapes {self.cache_root}"),
            )
        return target

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Read a page if its file exists."""
        path = self.path_for(key)

        try:
            async with aiofiles.open(path, "rb") as f:
                body = await f.read()
            stat_result = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read static page {path}: {e}")
            raise StorageUnavailableException(
                "get", self.name, key.path, original_error=e
            ) from e

        return CacheEntry(key=key, body=body, stored_at=stat_result.st_mtime, ttl=None)

    async def put(
        self, key: CacheKey, body: bytes, ttl: Optional[TTL] = None
    ) -> CacheEntry:
        """Write a page atomically; ttl is ignored by this backend."""
        path = self.path_for(key)
        temp_path = path.with_name(f".{STATIC_INDEX_FILENAME}.{uuid4().hex}.tmp")

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(body)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(temp_path, path)

        except OSError as e:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(temp_path)
            logger.error(f"Failed to write static page {path}: {e}")
            raise StorageUnavailableException(
                "put", self.name, key.path, original_error=e
            ) from e

        logger.debug(
            f"Saved static page: {path}",
            extra={"path": key.path, "size_bytes": len(body)},
        )
        return CacheEntry.create(key, body, ttl=None)

    async def delete(self, key: CacheKey) -> bool:
        """Remove the page file; missing files are a no-op."""
        path = self.path_for(key)

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete static page {path}: {e}")
            raise StorageUnavailableException(
                "delete", self.name, key.path, original_error=e
            ) from e

        return True

    async def purge_all(self) -> int:
        """Delete the whole cache tree and recreate an empty root."""
        with tracer.start_as_current_span("page_cache.static.purge_all") as span:
            span.set_attribute("page_cache.root", str(self.cache_root))

            try:
                count = await asyncio.to_thread(self._purge_tree)
            except OSError as e:
                logger.error(f"Failed to purge static page cache {self.cache_root}: {e}")
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise StorageUnavailableException(
                    "purge_all", self.name, str(self.cache_root), original_error=e
                ) from e

            span.set_attribute("page_cache.purged", count)
            logger.info(
                f"Purged {count} static pages",
                extra={"cache_root": str(self.cache_root), "count": count},
            )
            return count

    async def health_check(self) -> Dict[str, Any]:
        exists = await aiofiles.os.path.isdir(self.cache_root)
        writable = exists and os.access(self.cache_root, os.W_OK)
        health: Dict[str, Any] = {
            "status": "healthy" if writable else "unhealthy",
            "backend": self.name,
            "cache_root": str(self.cache_root),
            "writable": writable,
        }
        if not exists:
            health["error"] = "Cache root does not exist"
        elif not writable:
            health["error"] = "Cache root is not writable"
        return health

    def _purge_tree(self) -> int:
        count = 0
        if self.cache_root.exists():
            count = sum(1 for _ in self.cache_root.rglob(STATIC_INDEX_FILENAME))
            shutil.rmtree(self.cache_root)
        self.cache_root.mkdir(parents=True, exist_ok=True)
        return count
