"""Session Data Models

Purpose: Define the identity and session values shared by every component

Key Components:
- ProviderKind: Credential providers a session can be authenticated with
- Identity: Normalized, immutable view of the signed-in user
- Session: The single live authentication state of a coordinator
- PendingNonce: Outstanding federated sign-in attempt
- RemoteUserRecord: User record as reported by the identity service
- PasswordCredential / FederatedCredential: Transient proof of identity
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class ProviderKind(str, Enum):
    """Credential provider, valued by its identity-service provider id"""
    PASSWORD = "password"
    APPLE = "apple.com"
    GOOGLE = "google.com"


class SessionStatus(str, Enum):
    """Session lifecycle status"""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


class Identity(BaseModel):
    """Authenticated user identity.

    Attributes:
        id: Opaque, provider-issued unique identifier
        email: User email address (federated providers may hide it)
        display_name: Name shown in the UI
        avatar_url: Profile picture URI
        provider: Canonical provider the account is attributed to
    """
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    provider: ProviderKind


class Session(BaseModel):
    """Authentication state of the running process.

    ``status == AUTHENTICATED`` exactly when ``identity`` is set. An
    ``ERROR`` session always carries ``error_message``; an authenticated
    session may also carry one when a later attempt failed and the
    previous identity was restored.
    """
    model_config = ConfigDict(frozen=True)

    identity: Optional[Identity] = None
    status: SessionStatus = SessionStatus.UNAUTHENTICATED
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def check_consistency(self) -> "Session":
        if (self.status == SessionStatus.AUTHENTICATED) != (self.identity is not None):
            raise ValueError("identity must be set exactly when status is authenticated")
        if self.status == SessionStatus.ERROR and not self.error_message:
            raise ValueError("error sessions require an error_message")
        return self

    @classmethod
    def unauthenticated(cls) -> "Session":
        return cls()

    @classmethod
    def authenticating(cls) -> "Session":
        return cls(status=SessionStatus.AUTHENTICATING)

    @classmethod
    def authenticated(cls, identity: Identity, error_message: Optional[str] = None) -> "Session":
        return cls(
            identity=identity,
            status=SessionStatus.AUTHENTICATED,
            error_message=error_message,
        )

    @classmethod
    def failed(cls, message: str) -> "Session":
        return cls(status=SessionStatus.ERROR, error_message=message)

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATING


class PendingNonce(BaseModel):
    """Single in-flight federated sign-in attempt.

    Only ``challenge`` (SHA-256 hex of the raw nonce) is handed to the
    federated provider; the raw value stays local until credential exchange.
    """
    model_config = ConfigDict(frozen=True)

    provider: ProviderKind
    raw_nonce: SecretStr
    challenge: str
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RemoteUserRecord(BaseModel):
    """User record returned by the identity service.

    ``provider_ids`` keeps the order in which the service declares the
    linked providers.
    """
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    provider_ids: list[str] = Field(default_factory=list)


class PasswordCredential(BaseModel):
    """Email/password pair for one exchange"""
    email: str
    password: SecretStr


class FederatedCredential(BaseModel):
    """Federated provider token bound to the raw nonce of its attempt"""
    provider: ProviderKind
    id_token: SecretStr
    raw_nonce: SecretStr
    access_token: Optional[SecretStr] = None
