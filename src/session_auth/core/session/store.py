"""Session store.

Holds the one live Session of a coordinator. ``replace`` is synchronous and
must only be called from the owning event loop, which makes every swap
atomic with respect to other coroutines.
"""

import logging
from typing import Optional

from session_auth.core.session.events import SessionEventBus
from session_auth.domain.models import Identity, Session
from session_auth.infrastructure.cache.identity_cache import IdentityCache

logger = logging.getLogger(__name__)


class SessionStore:
    """Current session plus its persisted identity"""

    def __init__(self, bus: SessionEventBus, cache: IdentityCache, app_id: str):
        self._bus = bus
        self._cache = cache
        self._app_id = app_id
        self._session = Session.unauthenticated()

    def get(self) -> Session:
        return self._session

    def replace(self, session: Session) -> bool:
        """Swap in ``session`` and notify subscribers.

        Returns:
            False if ``session`` equals the current one (nothing published)
        """
        if session == self._session:
            return False
        previous, self._session = self._session, session
        logger.debug(f"Session {previous.status.value} -> {session.status.value}")
        self._bus.publish(session)
        return True

    async def restore(self) -> Optional[Identity]:
        """Load the cached identity and, if present, show it as signed in"""
        identity = await self._cache.load(self._app_id)
        if identity is not None:
            logger.info(f"Restored cached identity {identity.id} ({identity.provider.value})")
            self.replace(Session.authenticated(identity))
        return identity

    async def save(self, identity: Identity) -> None:
        await self._cache.save(self._app_id, identity)

    async def forget(self) -> None:
        await self._cache.clear(self._app_id)
