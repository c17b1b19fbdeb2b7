"""
Tests for the page cache manager facade.
"""

from pathlib import Path

import pytest

from pagecache.domain.cache.entities import SkipReason
from pagecache.domain.cache.value_objects import BackendKind, CacheKey
from pagecache.domain.content.host import RequestContext
from pagecache.infrastructure.circuit_breaker import CircuitState
from pagecache.infrastructure.exceptions import StorageUnavailableException
from pagecache.infrastructure.rewrite_rules import RewriteRuleInstaller
from pagecache.services.cache.cache_manager import PageCacheManager

from tests.fakes import make_mock_repository


class TestPageCacheManager:
    """PageCacheManager behaviour around a mocked repository."""

    @pytest.fixture
    def manager(self, settings, host, mock_repository):
        return PageCacheManager(settings, host, mock_repository)

    @pytest.mark.asyncio
    async def test_store_refuses_empty_body(self, manager, mock_repository):
        assert await manager.store(CacheKey.from_url("/"), b"") is False
        mock_repository.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_failures_open_the_guard(self, manager, mock_repository, settings):
        """After the failure threshold, writes are skipped until recovery."""
        mock_repository.put.side_effect = StorageUnavailableException("put", "ttl")
        key = CacheKey.from_url("/hello")

        for _ in range(settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD):
            assert await manager.store(key, b"<html></html>") is False

        assert manager.write_guard.state == CircuitState.OPEN
        assert await manager.store(key, b"<html></html>") is False
        assert mock_repository.put.await_count == settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD
        assert manager.stats.write_failures == settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD
        assert manager.stats.writes_suppressed == 1

    @pytest.mark.asyncio
    async def test_cooldown_leaves_reads_and_deletes_alone(self, manager, mock_repository):
        await manager.start_cooldown(120, reason="test")

        await manager.lookup(CacheKey.from_url("/hello"))
        await manager.evict_url("/hello")
        stored = await manager.store(CacheKey.from_url("/hello"), b"<html></html>")

        assert stored is False
        mock_repository.get.assert_awaited_once()
        mock_repository.delete.assert_awaited_once()
        mock_repository.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidate_entity_counts_evictions(self, manager):
        assert await manager.invalidate_entity("42") == 6
        assert manager.stats.evictions == 6

    @pytest.mark.asyncio
    async def test_evict_url_absent_key(self, manager, mock_repository):
        mock_repository.delete.return_value = False

        assert await manager.evict_url("/never-cached") is False
        assert manager.stats.evictions == 0

    @pytest.mark.asyncio
    async def test_purge_all_counts(self, manager, mock_repository):
        mock_repository.purge_all.return_value = 12

        assert await manager.purge_all() == 12
        assert manager.stats.purges == 1

    @pytest.mark.asyncio
    async def test_purge_all_propagates_storage_failure(self, manager, mock_repository):
        mock_repository.purge_all.side_effect = StorageUnavailableException("purge_all", "ttl")

        with pytest.raises(StorageUnavailableException):
            await manager.purge_all()
        assert manager.stats.purges == 0

    @pytest.mark.asyncio
    async def test_health_check_reports_backend_errors(self, manager, mock_repository):
        mock_repository.health_check.side_effect = RuntimeError("disk gone")

        health = await manager.health_check()

        assert health["status"] == "unhealthy"
        assert "disk gone" in health["backend"]["error"]

    def test_skip_reason_for_cacheable_request(self, manager):
        assert manager.skip_reason_for(RequestContext("/blog/post", "GET")) is None

    def test_key_for_takes_request_path_as_given(self, manager):
        assert manager.key_for("//x/bar") != manager.key_for("/bar")
        assert manager.key_for("/bar#x") != manager.key_for("/bar")

    def test_static_backend_skips_paths_changed_by_sanitization(self, settings, host):
        manager = PageCacheManager(settings, host, make_mock_repository(BackendKind.STATIC))

        assert manager.skip_reason_for(RequestContext("/bar#x", "GET")) == SkipReason.UNSAFE_PATH
        assert manager.skip_reason_for(RequestContext("//bar", "GET")) == SkipReason.UNSAFE_PATH
        assert manager.skip_reason_for(RequestContext("/bar/", "GET")) is None
        assert manager.skip_reason_for(RequestContext("/", "GET")) is None

    def test_ttl_backend_keeps_exact_paths(self, manager):
        assert manager.skip_reason_for(RequestContext("/bar#x", "GET")) is None

    def test_get_stats_shape(self, manager):
        stats = manager.get_stats()

        assert stats["backend"] == "ttl"
        assert stats["enabled"] is True
        assert stats["stats"]["hits"] == 0
        assert stats["write_guard"]["state"] == "closed"
        assert "rewrite_rules" not in stats

    @pytest.mark.asyncio
    async def test_static_backend_installs_rewrite_rules(self, settings, host):
        Path(settings.DOCUMENT_ROOT).mkdir(parents=True)
        repository = make_mock_repository(BackendKind.STATIC)
        installer = RewriteRuleInstaller(settings)
        manager = PageCacheManager(settings, host, repository, rewrite_installer=installer)

        await manager.initialize()

        repository.initialize.assert_awaited_once()
        assert installer.installed
        assert manager.get_stats()["rewrite_rules"]["installed"] is True
