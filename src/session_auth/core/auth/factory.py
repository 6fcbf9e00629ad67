"""Identity backend and adapter factory.

Selects the identity backend and session cache from configuration and
builds one adapter per supported provider.
"""

import logging
from typing import Optional

from session_auth.config.settings import Settings, get_settings
from session_auth.core.auth.federated import AppleAdapter, GoogleAdapter
from session_auth.core.auth.password import PasswordAdapter
from session_auth.core.auth.provider import ProviderAdapter
from session_auth.domain.models import ProviderKind
from session_auth.infrastructure.cache.identity_cache import (
    IdentityCache,
    MemoryIdentityCache,
    RedisIdentityCache,
)
from session_auth.infrastructure.cache.token_store import MemoryTokenStore, RedisTokenStore, TokenStore
from session_auth.infrastructure.identity.backend import IdentityBackend
from session_auth.infrastructure.redis.client import get_redis_client

logger = logging.getLogger(__name__)

# Global backend instance (initialized on first call)
_backend_instance: Optional[IdentityBackend] = None


async def get_identity_backend(settings: Optional[Settings] = None) -> IdentityBackend:
    """Get the configured identity backend instance.

    Backend is selected via IDENTITY_BACKEND:
    - local: Redis-backed accounts (default for self-hosted)
    - remote: Managed identity REST API

    Returns:
        Configured IdentityBackend instance

    Raises:
        ValueError: If IDENTITY_BACKEND is invalid or incompletely configured
    """
    global _backend_instance

    # Return cached instance
    if _backend_instance is not None:
        return _backend_instance

    settings = settings or get_settings()
    mode = settings.identity_backend.lower()
    logger.info(f"Initializing identity backend: {mode}")

    if mode == "local":
        from session_auth.infrastructure.identity.local import LocalIdentityBackend

        redis_client = await get_redis_client()
        _backend_instance = LocalIdentityBackend(
            redis_client.get_client(),
            secret_key=settings.local_secret_key,
            algorithm=settings.local_algorithm,
            token_expire_minutes=settings.local_token_expire_minutes,
            token_store=await get_token_store(settings),
        )

    elif mode == "remote":
        from session_auth.infrastructure.identity.remote import RemoteIdentityBackend

        if not settings.identity_api_key:
            raise ValueError("Remote identity backend requires: IDENTITY_API_KEY")

        _backend_instance = RemoteIdentityBackend(
            api_url=settings.identity_api_url,
            api_key=settings.identity_api_key,
            request_uri=settings.idp_request_uri,
            timeout=settings.exchange_timeout_seconds,
            token_api_url=settings.token_api_url,
            token_store=await get_token_store(settings),
        )

    else:
        raise ValueError(
            f"Unknown IDENTITY_BACKEND: {mode}. "
            f"Valid options: local, remote"
        )

    logger.info(f"Identity backend initialized: {_backend_instance.__class__.__name__}")
    return _backend_instance


async def get_identity_cache(settings: Optional[Settings] = None) -> IdentityCache:
    """Get the session cache selected via SESSION_CACHE (redis or memory)"""
    settings = settings or get_settings()
    mode = settings.session_cache.lower()

    if mode == "redis":
        redis_client = await get_redis_client()
        return RedisIdentityCache(redis_client.get_client())
    if mode == "memory":
        return MemoryIdentityCache()

    raise ValueError(f"Unknown SESSION_CACHE: {mode}. Valid options: redis, memory")


async def get_token_store(settings: Optional[Settings] = None) -> TokenStore:
    """Store for the backend's own session, next to the identity cache"""
    settings = settings or get_settings()
    if settings.session_cache.lower() == "redis":
        redis_client = await get_redis_client()
        return RedisTokenStore(redis_client.get_client(), settings.app_id)
    return MemoryTokenStore()


def build_adapters(backend: IdentityBackend) -> dict[ProviderKind, ProviderAdapter]:
    """One adapter per supported provider, all sharing ``backend``"""
    adapters = [PasswordAdapter(backend), AppleAdapter(backend), GoogleAdapter(backend)]
    return {adapter.kind: adapter for adapter in adapters}


def reset_identity_backend() -> None:
    """Reset the global backend instance (for testing)."""
    global _backend_instance
    _backend_instance = None
