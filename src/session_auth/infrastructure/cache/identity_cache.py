"""Identity Cache

Purpose: Persist the last signed-in identity across process restarts

On cold start the coordinator restores this value to show the user as
signed in before the identity service confirms it. The cache is a
best-effort convenience: storage failures are logged and never fail an
authentication operation.

Storage Schema:
- auth:session:{app_id} -> {identity_json}
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis

from session_auth.domain.models import Identity

logger = logging.getLogger(__name__)


class IdentityCache(ABC):
    """Last-known identity, keyed by application id"""

    @abstractmethod
    async def load(self, app_id: str) -> Optional[Identity]:
        """Return the cached identity, or None if nothing usable is stored"""

    @abstractmethod
    async def save(self, app_id: str, identity: Identity) -> None:
        """Replace the cached identity"""

    @abstractmethod
    async def clear(self, app_id: str) -> None:
        """Forget the cached identity"""


class MemoryIdentityCache(IdentityCache):
    """Process-local cache (tests and single-run tools)"""

    def __init__(self):
        self._entries: dict[str, str] = {}

    async def load(self, app_id: str) -> Optional[Identity]:
        raw = self._entries.get(app_id)
        return Identity.model_validate_json(raw) if raw else None

    async def save(self, app_id: str, identity: Identity) -> None:
        self._entries[app_id] = identity.model_dump_json()

    async def clear(self, app_id: str) -> None:
        self._entries.pop(app_id, None)


class RedisIdentityCache(IdentityCache):
    """Redis-backed identity cache"""

    def __init__(self, redis_client: Redis):
        """Initialize identity cache

        Args:
            redis_client: Redis connection for cache storage
        """
        self.redis = redis_client
        self.session_key_pattern = "auth:session:{}"

    async def load(self, app_id: str) -> Optional[Identity]:
        key = self.session_key_pattern.format(app_id)
        try:
            raw = await self.redis.get(key)
        except Exception as e:
            logger.error(f"Redis GET failed for key {key}: {e}")
            return None

        if not raw:
            return None

        try:
            return Identity.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached identity for {app_id}: {e}")
            await self.clear(app_id)
            return None

    async def save(self, app_id: str, identity: Identity) -> None:
        key = self.session_key_pattern.format(app_id)
        try:
            await self.redis.set(key, identity.model_dump_json())
            logger.debug(f"Cached identity {identity.id} for {app_id}")
        except Exception as e:
            logger.error(f"Redis SET failed for key {key}: {e}")

    async def clear(self, app_id: str) -> None:
        key = self.session_key_pattern.format(app_id)
        try:
            await self.redis.delete(key)
        except Exception as e:
            logger.error(f"Redis DELETE failed for key {key}: {e}")
