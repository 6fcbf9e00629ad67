"""Remote identity backend (managed identity service over REST).

Talks to an Identity Toolkit style API:
- accounts:signInWithPassword
- accounts:signUp
- accounts:update
- accounts:lookup
- accounts:signInWithIdp
- token (secure token service, refresh grant)

Every successful sign-in is followed by a lookup so the returned record
lists all linked providers in the order the service declares them. The ID
and refresh tokens are kept in a TokenStore so a restarted process resumes
the session.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from session_auth.core.auth.errors import NetworkError, ProviderError
from session_auth.domain.models import FederatedCredential, PasswordCredential, RemoteUserRecord
from session_auth.infrastructure.cache.token_store import MemoryTokenStore, TokenStore
from session_auth.infrastructure.identity.backend import IdentityBackend

logger = logging.getLogger(__name__)

# Service error codes -> messages suitable for display
ERROR_MESSAGES = {
    "EMAIL_EXISTS": "The email address is already in use by another account.",
    "EMAIL_NOT_FOUND": "The password is invalid or the user does not have a password.",
    "INVALID_PASSWORD": "The password is invalid or the user does not have a password.",
    "INVALID_LOGIN_CREDENTIALS": "The password is invalid or the user does not have a password.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "WEAK_PASSWORD": "The password must be 6 characters long or more.",
    "USER_DISABLED": "The user account has been disabled by an administrator.",
    "USER_NOT_FOUND": "The user's credential is no longer valid. The user must sign in again.",
    "INVALID_ID_TOKEN": "The user's credential is no longer valid. The user must sign in again.",
    "TOKEN_EXPIRED": "The user's credential is no longer valid. The user must sign in again.",
    "INVALID_IDP_RESPONSE": "The supplied auth credential is malformed or has expired.",
    "MISSING_OR_INVALID_NONCE": "The nonce in the ID token does not match the provided nonce.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": (
        "We have blocked all requests from this device due to unusual activity. Try again later."
    ),
}


class RemoteIdentityBackend(IdentityBackend):
    """Client for a managed identity REST API.

    Example Configuration:
        IDENTITY_BACKEND=remote
        IDENTITY_API_URL=https://identitytoolkit.googleapis.com/v1
        IDENTITY_API_KEY=AIza...
        TOKEN_API_URL=https://securetoken.googleapis.com/v1
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        request_uri: str = "http://localhost",
        timeout: float = 15.0,
        token_api_url: str = "https://securetoken.googleapis.com/v1",
        token_store: Optional[TokenStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize remote identity backend.

        Args:
            api_url: Base URL of the identity API
            api_key: Project API key sent with every request
            request_uri: Continue URI reported on federated sign-in
            timeout: Per-request timeout in seconds
            token_api_url: Base URL of the token refresh endpoint
            token_store: Where the session tokens are persisted
            transport: Custom httpx transport (tests)
        """
        super().__init__()
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.request_uri = request_uri
        self.timeout = timeout
        self.token_api_url = token_api_url.rstrip("/")
        self._token_store = token_store or MemoryTokenStore()
        self._transport = transport

        self._id_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._current: Optional[RemoteUserRecord] = None

    async def sign_in_with_password(self, credential: PasswordCredential) -> RemoteUserRecord:
        tokens = await self._post(
            "accounts:signInWithPassword",
            {
                "email": credential.email,
                "password": credential.password.get_secret_value(),
                "returnSecureToken": True,
            },
        )
        return await self._start_session(tokens)

    async def create_user(self, credential: PasswordCredential) -> RemoteUserRecord:
        tokens = await self._post(
            "accounts:signUp",
            {
                "email": credential.email,
                "password": credential.password.get_secret_value(),
                "returnSecureToken": True,
            },
        )
        logger.info(f"Account created: {tokens.get('localId')}")
        return await self._start_session(tokens)

    async def update_profile(self, uid: str, display_name: str) -> None:
        id_token = self._require_token(uid)
        await self._post(
            "accounts:update",
            {"idToken": id_token, "displayName": display_name, "returnSecureToken": False},
        )

    async def reload_user(self, uid: str) -> RemoteUserRecord:
        id_token = self._require_token(uid)
        self._current = await self._lookup(id_token)
        await self._persist()
        return self._current

    async def sign_in_with_credential(self, credential: FederatedCredential) -> RemoteUserRecord:
        post_body = {
            "id_token": credential.id_token.get_secret_value(),
            "providerId": credential.provider.value,
            "nonce": credential.raw_nonce.get_secret_value(),
        }
        if credential.access_token is not None:
            post_body["access_token"] = credential.access_token.get_secret_value()

        tokens = await self._post(
            "accounts:signInWithIdp",
            {
                "postBody": urlencode(post_body),
                "requestUri": self.request_uri,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        return await self._start_session(tokens)

    async def sign_out(self) -> None:
        """Drop the held tokens; the REST API keeps no client session to end"""
        had_user = self._current is not None
        self._id_token = None
        self._refresh_token = None
        self._current = None
        await self._token_store.clear()
        if had_user:
            await self._notify(None)

    async def current_user(self) -> Optional[RemoteUserRecord]:
        return self._current

    async def restore_session(self) -> Optional[RemoteUserRecord]:
        """Resume the stored session, refreshing the ID token if it expired.

        While the service is unreachable the stored user is kept; a session
        the service rejects is dropped.
        """
        stored = await self._token_store.load()
        if not stored or not stored.get("id_token"):
            return self._current

        self._id_token = stored["id_token"]
        self._refresh_token = stored.get("refresh_token")
        try:
            self._current = RemoteUserRecord.model_validate(stored.get("user") or {})
        except ValidationError:
            self._current = None

        try:
            record = await self._verified_record()
        except NetworkError as e:
            logger.warning(f"Could not verify stored session: {e.message}")
            return self._current
        except ProviderError as e:
            logger.info(f"Stored session rejected by the identity service: {e.message}")
            self._id_token = None
            self._refresh_token = None
            self._current = None
            await self._token_store.clear()
            return None

        self._current = record
        await self._persist()
        logger.info(f"Remote session restored for user {record.uid}")
        return record

    async def _start_session(self, tokens: dict[str, Any]) -> RemoteUserRecord:
        id_token = tokens.get("idToken")
        if not id_token:
            raise ProviderError("The identity service returned no ID token.")

        record = await self._lookup(id_token)
        self._id_token = id_token
        self._refresh_token = tokens.get("refreshToken")
        self._current = record
        await self._persist()
        logger.info(f"Remote session started for user {record.uid}")
        await self._notify(record)
        return record

    async def _verified_record(self) -> RemoteUserRecord:
        try:
            return await self._lookup(self._id_token)
        except ProviderError:
            if not self._refresh_token:
                raise
        await self._refresh_id_token()
        return await self._lookup(self._id_token)

    async def _refresh_id_token(self) -> None:
        data = await self._post(
            "token",
            {"grant_type": "refresh_token", "refresh_token": self._refresh_token},
            base_url=self.token_api_url,
        )
        if not data.get("id_token"):
            raise ProviderError(ERROR_MESSAGES["TOKEN_EXPIRED"])
        self._id_token = data["id_token"]
        self._refresh_token = data.get("refresh_token", self._refresh_token)

    async def _persist(self) -> None:
        if self._id_token is None or self._current is None:
            return
        await self._token_store.save(
            {
                "id_token": self._id_token,
                "refresh_token": self._refresh_token,
                "user": self._current.model_dump(),
            }
        )

    async def _lookup(self, id_token: str) -> RemoteUserRecord:
        data = await self._post("accounts:lookup", {"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise ProviderError(ERROR_MESSAGES["USER_NOT_FOUND"])
        return self._record_from_user(users[0])

    def _record_from_user(self, user: dict[str, Any]) -> RemoteUserRecord:
        provider_ids = [
            info["providerId"] for info in user.get("providerUserInfo", []) if info.get("providerId")
        ]
        return RemoteUserRecord(
            uid=user["localId"],
            email=user.get("email"),
            display_name=user.get("displayName"),
            photo_url=user.get("photoUrl"),
            provider_ids=provider_ids,
        )

    def _require_token(self, uid: str) -> str:
        if self._id_token is None or self._current is None or self._current.uid != uid:
            raise ProviderError(ERROR_MESSAGES["INVALID_ID_TOKEN"])
        return self._id_token

    async def _post(
        self, method: str, payload: dict[str, Any], base_url: Optional[str] = None
    ) -> dict[str, Any]:
        """POST to ``{base_url or api_url}/{method}`` and return the JSON body.

        Raises:
            NetworkError: On timeout or transport failure
            ProviderError: If the service rejects the request
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{base_url or self.api_url}/{method}",
                    params={"key": self.api_key},
                    json=payload,
                )
        except httpx.TimeoutException as e:
            logger.warning(f"Identity API {method} timed out: {e}")
            raise NetworkError("The request timed out.") from e
        except httpx.TransportError as e:
            logger.warning(f"Identity API {method} unreachable: {e}")
            raise NetworkError(
                "A network error (such as timeout, interrupted connection or "
                "unreachable host) has occurred."
            ) from e

        if response.status_code != 200:
            message = self._error_message(response)
            logger.warning(f"Identity API {method} failed ({response.status_code}): {message}")
            raise ProviderError(message)

        return response.json()

    def _error_message(self, response: httpx.Response) -> str:
        try:
            raw = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return f"Identity service error: {response.status_code}"

        # e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
        code = raw.split(":", 1)[0].strip()
        return ERROR_MESSAGES.get(code, raw)
