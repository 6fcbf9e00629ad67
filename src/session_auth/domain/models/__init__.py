"""Domain models for Session Auth Service"""

from session_auth.domain.models.api_session import (
    ErrorResponse,
    FederatedBeginRequest,
    FederatedChallengeResponse,
    FederatedCompleteRequest,
    SessionResponse,
    SignInRequest,
    SignOutResponse,
    SignUpRequest,
)
from session_auth.domain.models.session import (
    FederatedCredential,
    Identity,
    PasswordCredential,
    PendingNonce,
    ProviderKind,
    RemoteUserRecord,
    Session,
    SessionStatus,
)
from session_auth.domain.models.user import StoredUser

__all__ = [
    # Session models
    "ProviderKind",
    "SessionStatus",
    "Identity",
    "Session",
    "PendingNonce",
    "RemoteUserRecord",
    "PasswordCredential",
    "FederatedCredential",
    # Account models
    "StoredUser",
    # API models
    "SignInRequest",
    "SignUpRequest",
    "FederatedBeginRequest",
    "FederatedChallengeResponse",
    "FederatedCompleteRequest",
    "SessionResponse",
    "SignOutResponse",
    "ErrorResponse",
]
