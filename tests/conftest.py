"""
Pytest configuration and fixtures for session auth tests.

Provides fixtures for:
- In-memory identity backend with call recording and failure injection
- Coordinator wired to that backend and an in-memory identity cache
- Federated ID tokens bound to a nonce challenge
"""

import asyncio
from typing import Optional

import pytest
from jose import jwt

from session_auth.core.auth.errors import ProviderError
from session_auth.core.auth.factory import build_adapters
from session_auth.core.session.coordinator import AuthCoordinator
from session_auth.domain.models import FederatedCredential, PasswordCredential, RemoteUserRecord
from session_auth.infrastructure.cache.identity_cache import MemoryIdentityCache
from session_auth.infrastructure.identity.backend import IdentityBackend

TOKEN_SECRET = "test-secret-key"


class FakeIdentityBackend(IdentityBackend):
    """Identity service stand-in.

    ``errors`` maps a method name to an exception raised on its next call.
    While ``gate`` is set to an unset Event, exchanges block until it is set.
    ``persisted`` is the user a previous process left signed in.
    """

    def __init__(self):
        super().__init__()
        self.accounts: dict[str, dict] = {}
        self.federated_records: dict[str, RemoteUserRecord] = {}
        self.calls: list[str] = []
        self.errors: dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.last_credential: Optional[FederatedCredential] = None
        self.persisted: Optional[RemoteUserRecord] = None
        self._current: Optional[RemoteUserRecord] = None

    def add_account(self, email: str, password: str, **fields) -> RemoteUserRecord:
        record = RemoteUserRecord(
            uid=f"uid-{len(self.accounts) + 1}",
            email=email,
            provider_ids=fields.pop("provider_ids", ["password"]),
            **fields,
        )
        self.accounts[email] = {"record": record, "password": password}
        return record

    async def _enter(self, name: str, gated: bool = True) -> None:
        self.calls.append(name)
        if gated and self.gate is not None:
            await self.gate.wait()
        error = self.errors.pop(name, None)
        if error is not None:
            raise error

    async def _set_current(self, record: RemoteUserRecord) -> RemoteUserRecord:
        self._current = record
        await self._notify(record)
        return record

    async def sign_in_with_password(self, credential: PasswordCredential) -> RemoteUserRecord:
        await self._enter("sign_in_with_password")
        account = self.accounts.get(credential.email)
        if not account or account["password"] != credential.password.get_secret_value():
            raise ProviderError("The password is invalid or the user does not have a password.")
        return await self._set_current(account["record"])

    async def create_user(self, credential: PasswordCredential) -> RemoteUserRecord:
        await self._enter("create_user")
        if credential.email in self.accounts:
            raise ProviderError("The email address is already in use by another account.")
        record = self.add_account(credential.email, credential.password.get_secret_value())
        return await self._set_current(record)

    async def update_profile(self, uid: str, display_name: str) -> None:
        await self._enter("update_profile")
        for account in self.accounts.values():
            if account["record"].uid == uid:
                account["record"] = account["record"].model_copy(
                    update={"display_name": display_name}
                )

    async def reload_user(self, uid: str) -> RemoteUserRecord:
        await self._enter("reload_user")
        for account in self.accounts.values():
            if account["record"].uid == uid:
                self._current = account["record"]
                return self._current
        raise ProviderError("There is no user record corresponding to this identifier.")

    async def sign_in_with_credential(self, credential: FederatedCredential) -> RemoteUserRecord:
        await self._enter("sign_in_with_credential")
        self.last_credential = credential
        provider_id = credential.provider.value
        record = self.federated_records.get(provider_id) or RemoteUserRecord(
            uid=f"{provider_id}-user", provider_ids=[provider_id]
        )
        return await self._set_current(record)

    async def sign_out(self) -> None:
        await self._enter("sign_out", gated=False)
        had_user = self._current is not None
        self._current = None
        if had_user:
            await self._notify(None)

    async def current_user(self) -> Optional[RemoteUserRecord]:
        return self._current

    async def restore_session(self) -> Optional[RemoteUserRecord]:
        error = self.errors.pop("restore_session", None)
        if error is not None:
            raise error
        if self._current is None:
            self._current = self.persisted
        return self._current


def make_id_token(nonce: Optional[str], sub: str = "federated-subject", **claims) -> str:
    """HS256 ID token carrying ``nonce`` (omitted when None)"""
    payload = {"sub": sub, **claims}
    if nonce is not None:
        payload["nonce"] = nonce
    return jwt.encode(payload, TOKEN_SECRET, algorithm="HS256")


async def drain(iterations: int = 20) -> None:
    """Let pending tasks on the loop run"""
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.fixture
def backend() -> FakeIdentityBackend:
    return FakeIdentityBackend()


@pytest.fixture
def identity_cache() -> MemoryIdentityCache:
    return MemoryIdentityCache()


@pytest.fixture
def coordinator(backend, identity_cache) -> AuthCoordinator:
    return AuthCoordinator(
        backend,
        build_adapters(backend),
        identity_cache,
        app_id="test-app",
        exchange_timeout=1.0,
        nonce_ttl_seconds=60,
    )


@pytest.fixture
def published(coordinator) -> list:
    """Sessions delivered to a subscriber, in order"""
    sessions = []
    coordinator.subscribe(sessions.append)
    return sessions
