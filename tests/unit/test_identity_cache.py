"""Unit tests for RedisIdentityCache

Tests cache behaviour with mocked Redis.
"""

import pytest
from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from session_auth.domain.models import Identity, ProviderKind
from session_auth.infrastructure.cache.identity_cache import RedisIdentityCache


@pytest.fixture
def mock_redis():
    """Mock Redis client"""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def cache(mock_redis):
    return RedisIdentityCache(mock_redis)


@pytest.fixture
def identity():
    return Identity(id="uid-1", email="ann@example.com", display_name="Ann", provider=ProviderKind.GOOGLE)


@pytest.mark.unit
class TestRedisIdentityCache:
    """Test best-effort identity persistence"""

    @pytest.mark.asyncio
    async def test_save_then_load(self, cache, mock_redis, identity):
        """Happy path: identity is stored as JSON under the app key"""
        await cache.save("my-app", identity)

        key, raw = mock_redis.set.call_args.args
        assert key == "auth:session:my-app"

        mock_redis.get.return_value = raw
        assert await cache.load("my-app") == identity

    @pytest.mark.asyncio
    async def test_load_missing(self, cache):
        assert await cache.load("my-app") is None

    @pytest.mark.asyncio
    async def test_unreadable_entry_discarded(self, cache, mock_redis):
        """Edge case: corrupt cache entry is deleted and treated as empty"""
        mock_redis.get.return_value = '{"id": "uid-1", "provider": "myspace.com"}'

        assert await cache.load("my-app") is None
        mock_redis.delete.assert_awaited_once_with("auth:session:my-app")

    @pytest.mark.asyncio
    async def test_redis_errors_are_swallowed(self, cache, mock_redis, identity):
        """Bad input: storage failures never fail an authentication"""
        mock_redis.get.side_effect = RedisConnectionError("down")
        mock_redis.set.side_effect = RedisConnectionError("down")
        mock_redis.delete.side_effect = RedisConnectionError("down")

        assert await cache.load("my-app") is None
        await cache.save("my-app", identity)
        await cache.clear("my-app")

    @pytest.mark.asyncio
    async def test_clear(self, cache, mock_redis):
        await cache.clear("my-app")

        mock_redis.delete.assert_awaited_once_with("auth:session:my-app")
