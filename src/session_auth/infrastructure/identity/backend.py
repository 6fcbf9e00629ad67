"""Identity backend interface.

The identity service owns accounts, credentials and sessions; this module
defines what the coordinator needs from its client. Implementations raise
ProviderError when the service rejects a request and NetworkError on
transport failures.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from session_auth.core.session.events import Subscription
from session_auth.domain.models import FederatedCredential, PasswordCredential, RemoteUserRecord

logger = logging.getLogger(__name__)

AuthStateCallback = Callable[[Optional[RemoteUserRecord]], Awaitable[None]]


class IdentityBackend(ABC):
    """Client for an external identity service.

    Keeps track of the user it is signed in as and pushes every change of
    that user to subscribers, starting with the current value on subscribe.
    """

    def __init__(self):
        self._observers: list[tuple[int, AuthStateCallback]] = []
        self._next_observer_id = 0

    @abstractmethod
    async def sign_in_with_password(self, credential: PasswordCredential) -> RemoteUserRecord:
        """Authenticate with email and password."""

    @abstractmethod
    async def create_user(self, credential: PasswordCredential) -> RemoteUserRecord:
        """Create an email/password account and sign in as it."""

    @abstractmethod
    async def update_profile(self, uid: str, display_name: str) -> None:
        """Set the display name of the signed-in account."""

    @abstractmethod
    async def reload_user(self, uid: str) -> RemoteUserRecord:
        """Fetch a fresh record for the signed-in account."""

    @abstractmethod
    async def sign_in_with_credential(self, credential: FederatedCredential) -> RemoteUserRecord:
        """Authenticate with a federated provider credential."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the remote session."""

    @abstractmethod
    async def current_user(self) -> Optional[RemoteUserRecord]:
        """User the client is currently signed in as, if any."""

    async def restore_session(self) -> Optional[RemoteUserRecord]:
        """Resume a session persisted by an earlier process, if any.

        Backends without persistence just report the current user.
        """
        return await self.current_user()

    async def subscribe(self, callback: AuthStateCallback) -> Subscription:
        """Observe auth-state changes.

        The callback is invoked once with the current user, then after every
        sign-in or sign-out.
        """
        observer_id = self._next_observer_id
        self._next_observer_id += 1
        self._observers.append((observer_id, callback))
        await callback(await self.current_user())
        return Subscription(lambda: self._remove_observer(observer_id))

    async def _notify(self, record: Optional[RemoteUserRecord]) -> None:
        for _, callback in list(self._observers):
            try:
                await callback(record)
            except Exception:
                logger.exception("Auth state observer failed")

    def _remove_observer(self, observer_id: int) -> None:
        self._observers = [(i, cb) for i, cb in self._observers if i != observer_id]
