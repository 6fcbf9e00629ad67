"""Authentication coordinator.

Owns the process-wide Session and runs every sign-in, sign-up and sign-out
against the provider adapters. All state lives on one asyncio event loop;
coordinator methods must be called from that loop.

Only one authentication operation may be in flight at a time. Each
operation takes a generation number; its result is applied only if no
newer operation (or sign-out) has started since. Remote exchanges run in
a task shielded from caller cancellation, so a dismissed caller does not
abort a request the identity service may already have honoured. Auth-state
pushes from the identity service are ignored until every such exchange has
settled; a superseded one that signed the service in is signed out again.
"""

import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional, Union

from session_auth.config.settings import Settings
from session_auth.core.auth.errors import (
    AlreadyInProgressError,
    AuthError,
    InvalidInputError,
    InvalidStateError,
    NetworkError,
)
from session_auth.core.auth.federated import FederatedAdapter
from session_auth.core.auth.password import PasswordAdapter
from session_auth.core.auth.provider import ProviderAdapter, identity_from_record
from session_auth.core.session.events import SessionEventBus, SessionListener, Subscription
from session_auth.core.session.nonce import NonceSlot
from session_auth.core.session.store import SessionStore
from session_auth.domain.models import (
    Identity,
    PendingNonce,
    ProviderKind,
    RemoteUserRecord,
    Session,
)
from session_auth.infrastructure.cache.identity_cache import IdentityCache
from session_auth.infrastructure.identity.backend import IdentityBackend

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}")


def is_valid_email(email: str) -> bool:
    """Full-string match against a lightweight RFC 5322 subset"""
    return bool(email and EMAIL_PATTERN.fullmatch(email))


class AuthCoordinator:
    """Single owner of the authentication session.

    Attributes:
        events: Bus notified with every new Session
    """

    def __init__(
        self,
        backend: IdentityBackend,
        adapters: dict[ProviderKind, ProviderAdapter],
        cache: IdentityCache,
        app_id: str = "default",
        exchange_timeout: float = 15.0,
        nonce_ttl_seconds: int = 600,
        password_min_length: int = 6,
    ):
        self._backend = backend
        self._adapters = adapters
        self._timeout = exchange_timeout
        self._password_min_length = password_min_length

        self.events = SessionEventBus(initial=Session.unauthenticated())
        self._store = SessionStore(self.events, cache, app_id)
        self._nonces = NonceSlot(nonce_ttl_seconds)

        self._generation = 0
        self._in_flight: Optional[int] = None
        self._outstanding: set[int] = set()
        self._remote_subscription: Optional[Subscription] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        backend: IdentityBackend,
        adapters: dict[ProviderKind, ProviderAdapter],
        cache: IdentityCache,
    ) -> "AuthCoordinator":
        return cls(
            backend,
            adapters,
            cache,
            app_id=settings.app_id,
            exchange_timeout=settings.exchange_timeout_seconds,
            nonce_ttl_seconds=settings.nonce_ttl_seconds,
            password_min_length=settings.password_min_length,
        )

    @property
    def session(self) -> Session:
        return self._store.get()

    @property
    def pending_nonce(self) -> Optional[PendingNonce]:
        return self._nonces.pending

    @property
    def nonce_ttl_seconds(self) -> int:
        return int(self._nonces.ttl.total_seconds())

    @property
    def is_busy(self) -> bool:
        return self._in_flight is not None

    def subscribe(self, listener: SessionListener) -> Subscription:
        return self.events.subscribe(listener)

    # Lifecycle

    async def start(self) -> None:
        """Show the cached identity, then follow the identity service's auth state"""
        await self._store.restore()
        try:
            await asyncio.wait_for(self._backend.restore_session(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Resuming the identity service session timed out")
        except AuthError as e:
            logger.warning(f"Could not resume the identity service session: {e.message}")
        self._remote_subscription = await self._backend.subscribe(self._on_remote_change)

    async def close(self) -> None:
        if self._remote_subscription is not None:
            self._remote_subscription.cancel()
            self._remote_subscription = None

    # Email/password

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        """Sign in with an existing email/password account.

        Raises:
            InvalidInputError: Malformed email or empty password (no network call)
            AlreadyInProgressError: Another operation is in flight
            ProviderError: Credentials rejected by the identity service
            NetworkError: Identity service unreachable or timed out
        """
        email = email.strip()
        if not is_valid_email(email):
            raise InvalidInputError("Please enter a valid email address")
        if not password:
            raise InvalidInputError("Please enter your password")

        self._ensure_idle()
        adapter = self._password_adapter()
        return await self._run(
            "Password sign-in",
            lambda: adapter.exchange_password_credential(email, password),
        )

    async def sign_up_with_password(self, email: str, password: str, display_name: str) -> Identity:
        """Create an email/password account named ``display_name`` and sign in.

        Raises:
            InvalidInputError: Malformed email, short password or blank name
            AlreadyInProgressError: Another operation is in flight
            ProviderError: Account rejected (e.g. email already in use)
            NetworkError: Identity service unreachable or timed out
        """
        email = email.strip()
        display_name = display_name.strip()
        if not is_valid_email(email):
            raise InvalidInputError("Please enter a valid email address")
        if len(password) < self._password_min_length:
            raise InvalidInputError(
                f"Password must be at least {self._password_min_length} characters"
            )
        if not display_name:
            raise InvalidInputError("Please enter your name")

        self._ensure_idle()
        adapter = self._password_adapter()
        return await self._run(
            "Sign-up",
            lambda: adapter.create_account(email, password, display_name),
        )

    # Federated providers

    def begin_federated_sign_in(self, provider: Union[ProviderKind, str]) -> PendingNonce:
        """Start a federated sign-in and return its pending nonce.

        Hand ``challenge`` to the provider's sign-in request; the raw nonce
        never leaves this process until credential exchange.
        """
        adapter = self._federated_adapter(provider)
        self._ensure_idle()
        pending = self._nonces.issue(adapter.kind)
        logger.info(f"Federated sign-in started: {adapter.kind.value}")
        return pending

    async def complete_federated_sign_in(
        self,
        provider: Union[ProviderKind, str],
        id_token: str,
        access_token: Optional[str] = None,
    ) -> Identity:
        """Finish a federated sign-in with the provider's ID token.

        The pending nonce is consumed whatever the outcome.

        Raises:
            InvalidStateError: No matching pending nonce, or token not bound to it
            AlreadyInProgressError: Another operation is in flight
            ProviderError: Credential rejected by the identity service
            NetworkError: Identity service unreachable or timed out
        """
        adapter = self._federated_adapter(provider)
        self._ensure_idle()

        try:
            pending = self._nonces.take(adapter.kind)
            credential = adapter.build_credential(id_token, pending, access_token)
        except InvalidStateError as e:
            self._record_failure(e.message)
            raise

        return await self._run(
            f"{adapter.kind.value} sign-in",
            lambda: adapter.exchange_federated_credential(credential),
        )

    def federated_scopes(self, provider: Union[ProviderKind, str]) -> list[str]:
        return list(self._federated_adapter(provider).scopes)

    def cancel_federated_sign_in(self) -> None:
        """User dismissed the provider's sign-in; not an error"""
        if self._nonces.clear():
            logger.info("Federated sign-in cancelled")

    # Session maintenance

    async def reload_identity(self) -> Identity:
        """Re-fetch the signed-in user and replace the identity wholesale.

        Raises:
            InvalidStateError: Nobody is signed in
            AlreadyInProgressError: Another operation is in flight
        """
        current = self.session.identity
        if current is None:
            raise InvalidStateError("Invalid state: no signed-in user to reload.")

        self._ensure_idle()
        adapter = self._adapters.get(current.provider) or self._password_adapter()
        return await self._run("Reload", lambda: adapter.refresh(current.id))

    async def sign_out(self) -> bool:
        """Invalidate the local session, then tell the identity service.

        Local invalidation always succeeds; any in-flight result is dropped.

        Returns:
            True if the identity service acknowledged the sign-out
        """
        self._generation += 1
        self._in_flight = None
        self._nonces.clear()
        self._store.replace(Session.unauthenticated())
        await self._store.forget()

        try:
            await asyncio.wait_for(self._backend.sign_out(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Remote sign-out timed out; local session already cleared")
            return False
        except AuthError as e:
            logger.warning(f"Remote sign-out failed: {e.message}; local session already cleared")
            return False

        logger.info("Signed out")
        return True

    # Internals

    async def _run(self, operation: str, exchange: Callable[[], Awaitable[Identity]]) -> Identity:
        self._generation += 1
        generation = self._generation
        self._in_flight = generation
        self._outstanding.add(generation)
        previous = self._store.get()
        self._store.replace(Session.authenticating())

        task = asyncio.ensure_future(self._settle(operation, generation, previous, exchange))
        task.add_done_callback(_retrieve_exception)
        return await asyncio.shield(task)

    async def _settle(
        self,
        operation: str,
        generation: int,
        previous: Session,
        exchange: Callable[[], Awaitable[Identity]],
    ) -> Identity:
        try:
            return await self._exchange(operation, generation, previous, exchange)
        finally:
            self._outstanding.discard(generation)

    async def _exchange(
        self,
        operation: str,
        generation: int,
        previous: Session,
        exchange: Callable[[], Awaitable[Identity]],
    ) -> Identity:
        cause: Optional[BaseException] = None
        try:
            identity = await asyncio.wait_for(exchange(), timeout=self._timeout)
            error: Optional[AuthError] = None
        except asyncio.TimeoutError as e:
            error, cause = NetworkError("The request timed out."), e
        except AuthError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected failure during {operation.lower()}")
            error, cause = AuthError("An internal error has occurred. Please try again."), e
        finally:
            if self._in_flight == generation:
                self._in_flight = None

        if error is not None:
            logger.warning(f"{operation} failed: {error.message}")
            if generation == self._generation:
                await self._settle_failure(generation, previous, error.message)
            if cause is not None:
                raise error from cause
            raise error

        if generation != self._generation:
            logger.info(f"{operation} finished after being superseded; result dropped")
            if self._in_flight is None and self._store.get().identity is None:
                await self._end_stale_session()
            raise InvalidStateError("Invalid state: the operation was superseded.")

        self._store.replace(Session.authenticated(identity))
        await self._store.save(identity)
        logger.info(f"{operation} succeeded: {identity.id} ({identity.provider.value})")
        return identity

    async def _settle_failure(self, generation: int, previous: Session, message: str) -> None:
        """Record a failure, keeping any user the identity service did sign in.

        A multi-step exchange (create account, then update its profile) can
        fail after the identity service has already signed the new user in.
        """
        try:
            record = await self._backend.current_user()
        except AuthError as e:
            logger.warning(f"Could not read the identity service user: {e.message}")
            record = None
        if generation != self._generation:
            return

        identity = identity_from_record(record)
        if identity is not None and identity != previous.identity:
            logger.info(f"Identity service kept user {identity.id} signed in after the failure")
            self._store.replace(Session.authenticated(identity, error_message=message))
            await self._store.save(identity)
        else:
            self._restore_after_failure(previous, message)

    async def _end_stale_session(self) -> None:
        # The superseded exchange may have signed the identity service in
        try:
            await asyncio.wait_for(self._backend.sign_out(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Signing out a superseded session timed out")
        except AuthError as e:
            logger.warning(f"Signing out a superseded session failed: {e.message}")

    def _restore_after_failure(self, previous: Session, message: str) -> None:
        if previous.identity is not None:
            self._store.replace(Session.authenticated(previous.identity, error_message=message))
        else:
            self._store.replace(Session.failed(message))

    def _record_failure(self, message: str) -> None:
        self._restore_after_failure(self._store.get(), message)

    async def _on_remote_change(self, record: Optional[RemoteUserRecord]) -> None:
        if self._outstanding:
            # Running or superseded exchanges settle their own result
            return

        identity = identity_from_record(record)
        current = self._store.get()
        if identity is None:
            if current.identity is not None:
                logger.info("Identity service reports no signed-in user")
                self._store.replace(Session.unauthenticated())
                await self._store.forget()
        elif current.identity != identity:
            logger.info(f"Identity service reports user {identity.id}")
            self._store.replace(Session.authenticated(identity))
            await self._store.save(identity)

    def _ensure_idle(self) -> None:
        if self._in_flight is not None:
            raise AlreadyInProgressError("Another sign-in operation is already in progress.")

    def _password_adapter(self) -> PasswordAdapter:
        adapter = self._adapters.get(ProviderKind.PASSWORD)
        if not isinstance(adapter, PasswordAdapter):
            raise InvalidInputError("Email/password sign-in is not enabled")
        return adapter

    def _federated_adapter(self, provider: Union[ProviderKind, str]) -> FederatedAdapter:
        try:
            kind = ProviderKind(provider)
        except ValueError:
            raise InvalidInputError(f"Unknown provider: {provider}")

        adapter = self._adapters.get(kind)
        if not isinstance(adapter, FederatedAdapter):
            raise InvalidInputError(f"{kind.value} is not an enabled federated provider")
        return adapter


def _retrieve_exception(task: asyncio.Task) -> None:
    # Mark the result as seen when the original caller was cancelled
    if not task.cancelled():
        task.exception()
