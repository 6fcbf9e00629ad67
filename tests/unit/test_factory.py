"""Unit tests for the identity backend factory

Tests backend and token store selection from settings.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from session_auth.config.settings import Settings
from session_auth.core.auth import factory
from session_auth.infrastructure.cache.token_store import MemoryTokenStore, RedisTokenStore
from session_auth.infrastructure.identity.remote import RemoteIdentityBackend


@pytest.fixture(autouse=True)
def fresh_backend():
    factory.reset_identity_backend()
    yield
    factory.reset_identity_backend()


@pytest.fixture
def mock_redis_client(monkeypatch):
    """Global Redis client stand-in"""
    redis_client = MagicMock()
    redis_client.get_client.return_value = AsyncMock()
    monkeypatch.setattr(factory, "get_redis_client", AsyncMock(return_value=redis_client))
    return redis_client


@pytest.mark.unit
class TestIdentityBackendFactory:
    """Test get_identity_backend and get_token_store"""

    @pytest.mark.asyncio
    async def test_remote_backend_with_memory_store(self):
        """Happy path: remote mode wires the token endpoint and a process-local store"""
        settings = Settings(
            identity_backend="remote",
            identity_api_key="test-api-key",
            session_cache="memory",
            token_api_url="https://token.identity.test/v1/",
        )

        backend = await factory.get_identity_backend(settings)

        assert isinstance(backend, RemoteIdentityBackend)
        assert backend.token_api_url == "https://token.identity.test/v1"
        assert isinstance(backend._token_store, MemoryTokenStore)

    @pytest.mark.asyncio
    async def test_token_store_shares_redis_with_cache(self, mock_redis_client):
        settings = Settings(session_cache="redis", app_id="my-app")

        store = await factory.get_token_store(settings)

        assert isinstance(store, RedisTokenStore)
        assert store.key == "auth:backend_session:my-app"
        assert store.redis is mock_redis_client.get_client.return_value

    @pytest.mark.asyncio
    async def test_remote_backend_requires_api_key(self):
        """Bad input: remote mode without an API key raises ValueError"""
        settings = Settings(identity_backend="remote", identity_api_key=None, session_cache="memory")

        with pytest.raises(ValueError, match="IDENTITY_API_KEY"):
            await factory.get_identity_backend(settings)

    @pytest.mark.asyncio
    async def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown IDENTITY_BACKEND"):
            await factory.get_identity_backend(Settings(identity_backend="ldap"))
