"""
Main pytest configuration for the page cache tests.

Fixtures for settings, content hosts and both storage backends. Redis is
replaced by fakeredis; the static store lives under tmp_path.
"""

import os

import fakeredis
import pytest

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"

from pagecache.core.config import Settings
from pagecache.infrastructure.redis.connection_factory import RedisConnectionFactory
from pagecache.infrastructure.repositories.redis_page_repository import (
    RedisPageCacheRepository,
)
from pagecache.infrastructure.repositories.static_file_repository import (
    StaticFilePageCacheRepository,
)
from pagecache.domain.cache.value_objects import TTL

from tests.fakes import ADMIN_TOKEN, make_mock_repository, make_sample_host


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every path at a per-test directory."""
    document_root = tmp_path / "public"
    return Settings(
        ENVIRONMENT="test",
        LOG_LEVEL="DEBUG",
        PAGE_CACHE_BACKEND="ttl",
        PAGE_CACHE_ADMIN_TOKEN=ADMIN_TOKEN,
        DOCUMENT_ROOT=str(document_root),
        STATIC_CACHE_ROOT=str(document_root / "page-cache"),
        REWRITE_RECHECK_SECONDS=3600,
        CIRCUIT_BREAKER_FAILURE_THRESHOLD=3,
        CIRCUIT_BREAKER_RECOVERY_TIMEOUT=60,
    )


@pytest.fixture
def host(settings):
    return make_sample_host(settings)


@pytest.fixture
def mock_repository():
    return make_mock_repository()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


@pytest.fixture
def redis_repository(settings, fake_redis):
    factory = RedisConnectionFactory(settings, client=fake_redis)
    return RedisPageCacheRepository(
        factory,
        namespace=settings.PAGE_CACHE_NAMESPACE,
        default_ttl=TTL(settings.PAGE_CACHE_TTL_SECONDS),
    )


@pytest.fixture
def static_repository(settings):
    return StaticFilePageCacheRepository(settings.STATIC_CACHE_ROOT)
