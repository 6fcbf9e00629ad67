"""Backend Token Store

Purpose: Persist an identity backend's own session across process restarts

Identity backends hold a session with the identity service (ID and refresh
tokens, or a local session token). Keeping it here lets a restarted process
resume that session instead of starting signed out. Like the identity cache,
storage is best-effort: failures are logged and never fail an operation.

Storage Schema:
- auth:backend_session:{app_id} -> {token_json}
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Backend session tokens for one application id"""

    @abstractmethod
    async def load(self) -> Optional[dict]:
        """Return the stored tokens, or None"""

    @abstractmethod
    async def save(self, tokens: dict) -> None:
        """Replace the stored tokens"""

    @abstractmethod
    async def clear(self) -> None:
        """Forget the stored tokens"""


class MemoryTokenStore(TokenStore):
    """Process-local token store"""

    def __init__(self):
        self._tokens: Optional[dict] = None

    async def load(self) -> Optional[dict]:
        return dict(self._tokens) if self._tokens else None

    async def save(self, tokens: dict) -> None:
        self._tokens = dict(tokens)

    async def clear(self) -> None:
        self._tokens = None


class RedisTokenStore(TokenStore):
    """Redis-backed token store"""

    def __init__(self, redis_client: Redis, app_id: str):
        """Initialize token store

        Args:
            redis_client: Redis connection for token storage
            app_id: Application the tokens belong to
        """
        self.redis = redis_client
        self.key = f"auth:backend_session:{app_id}"

    async def load(self) -> Optional[dict]:
        try:
            raw = await self.redis.get(self.key)
        except Exception as e:
            logger.error(f"Redis GET failed for key {self.key}: {e}")
            return None

        if not raw:
            return None

        try:
            tokens = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable backend session at {self.key}")
            await self.clear()
            return None
        return tokens if isinstance(tokens, dict) else None

    async def save(self, tokens: dict) -> None:
        try:
            await self.redis.set(self.key, json.dumps(tokens))
        except Exception as e:
            logger.error(f"Redis SET failed for key {self.key}: {e}")

    async def clear(self) -> None:
        try:
            await self.redis.delete(self.key)
        except Exception as e:
            logger.error(f"Redis DELETE failed for key {self.key}: {e}")
