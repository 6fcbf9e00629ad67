"""Local identity backend (self-hosted, Redis + bcrypt + JWT).

Default backend for development and self-hosted deployments. Plays the
role of the managed identity service: stores accounts, checks passwords,
verifies federated ID tokens and issues a session token that is revoked
on sign-out. The session token is kept in a TokenStore so a restarted
process resumes the session until the token expires or is revoked.

Federated ID tokens are expected to be HS256 JWTs signed with the shared
secret, carrying ``sub``, optional ``email``/``name``/``picture`` and the
``nonce`` challenge of the attempt.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Optional, TypeVar

import bcrypt
from jose import jwt, JWTError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from session_auth.core.auth.errors import NetworkError, ProviderError
from session_auth.core.session.nonce import nonce_challenge
from session_auth.domain.models import (
    FederatedCredential,
    PasswordCredential,
    ProviderKind,
    RemoteUserRecord,
    StoredUser,
)
from session_auth.infrastructure.auth.user_store import UserStore
from session_auth.infrastructure.cache.token_store import MemoryTokenStore, TokenStore
from session_auth.infrastructure.identity.backend import IdentityBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_CREDENTIALS = "The password is invalid or the user does not have a password."


class LocalIdentityBackend(IdentityBackend):
    """Email/password and federated accounts kept in Redis.

    Configuration:
        IDENTITY_BACKEND=local (default)
        LOCAL_SECRET_KEY=<your-secret-key>
        LOCAL_ALGORITHM=HS256 (default)
        LOCAL_TOKEN_EXPIRE_MINUTES=60 (default)
    """

    def __init__(
        self,
        redis_client: Redis,
        secret_key: str,
        algorithm: str = "HS256",
        token_expire_minutes: int = 60,
        token_store: Optional[TokenStore] = None,
    ):
        """Initialize local identity backend.

        Args:
            redis_client: Redis connection for accounts and revoked tokens
            secret_key: Secret for session tokens and federated ID tokens
            algorithm: JWT signing algorithm (HS256 recommended)
            token_expire_minutes: Session token TTL in minutes
            token_store: Where the session token is persisted
        """
        super().__init__()
        self.redis = redis_client
        self.users = UserStore(redis_client)
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_expire = timedelta(minutes=token_expire_minutes)
        self._token_store = token_store or MemoryTokenStore()

        self._current: Optional[StoredUser] = None
        self._session_token: Optional[str] = None

        if secret_key == "dev-secret-change-in-production":
            logger.warning(
                "Using default LOCAL_SECRET_KEY! "
                "Set LOCAL_SECRET_KEY environment variable in production!"
            )

    @property
    def session_token(self) -> Optional[str]:
        return self._session_token

    async def sign_in_with_password(self, credential: PasswordCredential) -> RemoteUserRecord:
        user = await self._guard(self.users.get_user_by_email(credential.email))
        if not user or not user.password_hash:
            logger.warning(f"Sign-in failed: no password account (email: {credential.email})")
            raise ProviderError(INVALID_CREDENTIALS)

        password = credential.password.get_secret_value()
        if not bcrypt.checkpw(password.encode(), user.password_hash.encode()):
            logger.warning(f"Sign-in failed: invalid password (email: {credential.email})")
            raise ProviderError(INVALID_CREDENTIALS)

        if not user.is_active:
            logger.warning(f"Sign-in failed: user disabled (email: {credential.email})")
            raise ProviderError("The user account has been disabled by an administrator.")

        await self._start_session(user)
        return user.to_record()

    async def create_user(self, credential: PasswordCredential) -> RemoteUserRecord:
        password_hash = bcrypt.hashpw(
            credential.password.get_secret_value().encode(), bcrypt.gensalt()
        ).decode()

        try:
            user = await self._guard(
                self.users.create_user(
                    provider_id=ProviderKind.PASSWORD.value,
                    email=credential.email,
                    password_hash=password_hash,
                )
            )
        except ValueError as e:
            raise ProviderError(str(e))

        await self._start_session(user)
        return user.to_record()

    async def update_profile(self, uid: str, display_name: str) -> None:
        user = self._require_current(uid)
        user.display_name = display_name
        await self._guard(self.users.update_user(user))

    async def reload_user(self, uid: str) -> RemoteUserRecord:
        self._require_current(uid)
        user = await self._guard(self.users.get_user(uid))
        if not user:
            raise ProviderError(
                "There is no user record corresponding to this identifier. "
                "The user may have been deleted."
            )
        self._current = user
        return user.to_record()

    async def sign_in_with_credential(self, credential: FederatedCredential) -> RemoteUserRecord:
        claims = self._verify_id_token(credential)
        provider_id = credential.provider.value
        subject = claims["sub"]
        email = claims.get("email")

        user = await self._guard(self.users.get_user_by_federated_subject(provider_id, subject))
        if user is None and email:
            # Same email already registered: link instead of duplicating the account
            user = await self._guard(self.users.get_user_by_email(email))
            if user is not None:
                user = await self._guard(self.users.link_provider(user, provider_id, subject))
        if user is None:
            user = await self._guard(
                self.users.create_user(
                    provider_id=provider_id,
                    email=email,
                    display_name=claims.get("name"),
                    photo_url=claims.get("picture"),
                    federated_subject=subject,
                )
            )

        if not user.is_active:
            raise ProviderError("The user account has been disabled by an administrator.")

        await self._start_session(user)
        return user.to_record()

    async def sign_out(self) -> None:
        """End the session locally, then revoke its token.

        Raises:
            NetworkError: If the revocation could not be stored
        """
        token, self._session_token = self._session_token, None
        had_user = self._current is not None
        self._current = None
        await self._token_store.clear()
        if had_user:
            await self._notify(None)

        if token:
            await self._revoke_token(token)

    async def current_user(self) -> Optional[RemoteUserRecord]:
        return self._current.to_record() if self._current else None

    async def restore_session(self) -> Optional[RemoteUserRecord]:
        """Resume the stored session token unless it expired or was revoked"""
        stored = await self._token_store.load()
        token = (stored or {}).get("session_token")
        if not token:
            return await self.current_user()

        user = await self._user_for_token(token)
        if user is None:
            await self._token_store.clear()
            return None

        self._session_token = token
        self._current = user
        logger.info(f"Local session restored for user {user.user_id}")
        return user.to_record()

    async def is_token_revoked(self, token: str) -> bool:
        """Check whether a session token was revoked by sign-out"""
        return await self._guard(self.redis.exists(f"revoked:{token}")) > 0

    def _verify_id_token(self, credential: FederatedCredential) -> dict:
        """Decode a federated ID token and check it is bound to this attempt.

        Raises:
            ProviderError: If the token is invalid or its nonce does not match
        """
        try:
            claims = jwt.decode(
                credential.id_token.get_secret_value(),
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.warning(f"Federated ID token rejected: {e}")
            raise ProviderError(f"Invalid ID token: {e}")

        if not claims.get("sub"):
            raise ProviderError("Invalid ID token: missing subject")

        expected = nonce_challenge(credential.raw_nonce.get_secret_value())
        if claims.get("nonce") != expected:
            logger.warning("Federated ID token rejected: nonce mismatch")
            raise ProviderError("Invalid ID token: nonce mismatch")

        return claims

    async def _user_for_token(self, token: str) -> Optional[StoredUser]:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info(f"Stored session token rejected: {e}")
            return None

        if payload.get("type") != "session" or await self.is_token_revoked(token):
            logger.info("Stored session token is no longer valid")
            return None

        user = await self._guard(self.users.get_user(payload.get("sub")))
        if not user or not user.is_active:
            return None
        return user

    def _require_current(self, uid: str) -> StoredUser:
        if self._current is None or self._current.user_id != uid:
            raise ProviderError("The user's credential is no longer valid. The user must sign in again.")
        return self._current

    async def _start_session(self, user: StoredUser) -> None:
        self._session_token = self._create_session_token(user)
        self._current = user
        await self._token_store.save({"session_token": self._session_token})
        logger.info(f"Local session started for user {user.user_id}")
        await self._notify(user.to_record())

    def _create_session_token(self, user: StoredUser) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.user_id,
            "email": user.email,
            "type": "session",
            "iat": now,
            "exp": now + self.token_expire,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    async def _revoke_token(self, token: str) -> None:
        ttl = int(self.token_expire.total_seconds())
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
            ttl = max(int(payload["exp"] - datetime.now(timezone.utc).timestamp()), 1)
        except JWTError:
            logger.debug("Unreadable session token, revoking for the full token lifetime")

        await self._guard(self.redis.setex(f"revoked:{token}", ttl, "1"))
        logger.debug(f"Session token revoked (TTL: {ttl}s)")

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as e:
            raise NetworkError(f"Identity store unavailable: {e}") from e
