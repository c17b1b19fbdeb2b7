"""
Front-door Rewrite Rules

Installs the Apache mod_rewrite block that lets the web server answer
requests straight from the static page cache. Installation is best effort:
without the block every request simply reaches the application and goes
through the capture path.
"""

import asyncio
import contextlib
import logging
import os
import re
import shutil
import time
from pathlib import Path
from typing import Optional, Dict, Any, List
from uuid import uuid4

import aiofiles
import aiofiles.os

from ..constants import (
    REWRITE_BEGIN_MARKER,
    REWRITE_END_MARKER,
    STATIC_INDEX_FILENAME,
)
from ..core.config import Settings
from .exceptions import UnsafeRewriteTargetException

logger = logging.getLogger(__name__)


class RewriteRuleInstaller:
    """
    Appends the static cache rewrite block to the front-door config once.

    A target that cannot be updated safely is reported once per recheck
    interval and leaves the installer degraded; it never raises.
    """

    def __init__(
        self,
        settings: Settings,
        cache_root: Optional[str] = None,
        target: Optional[str] = None,
    ):
        self.settings = settings
        self.document_root = Path(settings.DOCUMENT_ROOT).resolve()
        self.cache_root = Path(cache_root or settings.STATIC_CACHE_ROOT).resolve()
        self.target = Path(target or settings.rewrite_rules_file).resolve()
        self.recheck_seconds = settings.REWRITE_RECHECK_SECONDS

        self.installed = False
        self.degraded = False
        self.last_error: Optional[str] = None
        self.last_checked_at: Optional[float] = None
        self._next_check_at = 0.0
        self._lock = asyncio.Lock()

    def cache_relative_path(self) -> str:
        """Cache root relative to the document root, as used in URLs."""
        try:
            relative = self.cache_root.relative_to(self.document_root).as_posix()
        except ValueError as e:
            raise UnsafeRewriteTargetException(
                str(self.target), "cache root is outside the document root", e
            ) from e

        relative = relative.strip("/")
        if not relative or relative == ".":
            raise UnsafeRewriteTargetException(
                str(self.target), "cache root must be a subdirectory of the document root"
            )
        return relative

    def render_rules(self) -> str:
        """Directives serving {cache}/{uri}/index.html for anonymous GETs."""
        relative = self.cache_relative_path()
        lines: List[str] = [
            "RewriteEngine On",
            "RewriteCond %{REQUEST_METHOD} GET",
        ]

        excluded = self.settings.control_path_prefixes + self.settings.api_path_prefixes
        for prefix in excluded:
            lines.append(f"RewriteCond %{{REQUEST_URI}} !^{re.escape(prefix)}")

        cookie_prefixes = self.settings.auth_cookie_prefixes
        if cookie_prefixes:
            names = "|".join(re.escape(prefix) for prefix in cookie_prefixes)
            lines.append(f"RewriteCond %{{HTTP_COOKIE}} !(^|;\\s*)({names})")
        lines.append("RewriteCond %{HTTP:Authorization} ^$")

        if self.settings.PAGE_CACHE_SKIP_QUERY_STRINGS:
            lines.append("RewriteCond %{QUERY_STRING} ^$")

        lines.append(
            f"RewriteCond %{{DOCUMENT_ROOT}}/{relative}%{{REQUEST_URI}}/{STATIC_INDEX_FILENAME} -f"
        )
        lines.append(
            f"RewriteRule ^(.*)$ /{relative}%{{REQUEST_URI}}/{STATIC_INDEX_FILENAME} [L]"
        )
        return "\n".join(lines)

    def render_block(self) -> str:
        return f"{REWRITE_BEGIN_MARKER}\n{self.render_rules()}\n{REWRITE_END_MARKER}\n"

    async def ensure_installed(self) -> bool:
        """
        Install the block unless it is already present.

        Attempts are rate limited to one per recheck interval, whatever the
        outcome. Returns whether the block is in place.
        """
        async with self._lock:
            now = time.time()
            if now < self._next_check_at:
                return self.installed

            self._next_check_at = now + self.recheck_seconds
            self.last_checked_at = now

            try:
                await self._install()
            except UnsafeRewriteTargetException as e:
                self.installed = False
                self.degraded = True
                self.last_error = e.message
                logger.warning(
                    f"Static cache rewrite rules not installed, requests will use the application: {e.message}",
                    extra=e.details,
                )
                return False

            self.installed = True
            self.degraded = False
            self.last_error = None
            return True

    async def _install(self) -> None:
        block = self.render_block()
        temp_path = self.target.with_name(f".{self.target.name}.{uuid4().hex}.tmp")

        try:
            exists = await aiofiles.os.path.exists(self.target)
            existing = ""
            if exists:
                if not os.access(self.target, os.W_OK):
                    raise UnsafeRewriteTargetException(str(self.target), "target is not writable")
                async with aiofiles.open(self.target, "r", encoding="utf-8") as f:
                    existing = await f.read()

            if REWRITE_BEGIN_MARKER in existing:
                logger.debug(f"Rewrite rules already present in {self.target}")
                return

            if existing and not existing.endswith("\n"):
                existing += "\n"
            content = f"{existing}\n{block}" if existing else block

            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            if exists:
                await asyncio.to_thread(shutil.copymode, self.target, temp_path)
            await aiofiles.os.replace(temp_path, self.target)

        except OSError as e:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(temp_path)
            raise UnsafeRewriteTargetException(
                str(self.target), "target is not writable", e
            ) from e

        logger.info(f"Added static cache rewrite rules to {self.target}")

    def get_status(self) -> Dict[str, Any]:
        return {
            "target": str(self.target),
            "installed": self.installed,
            "degraded": self.degraded,
            "last_error": self.last_error,
            "last_checked_at": self.last_checked_at,
            "recheck_seconds": self.recheck_seconds,
        }
