"""Session API Models

Purpose: Request/response models for session endpoints

Credential format checks are left to the coordinator so that the HTTP
surface reports the same messages as any other caller.

Key Components:
- SignInRequest / SignUpRequest: Email/password input
- FederatedBeginRequest / FederatedCompleteRequest: Federated sign-in input
- FederatedChallengeResponse: Challenge to hand to the federated provider
- SessionResponse: Current session state for rendering
- SignOutResponse / ErrorResponse: Outcome payloads
"""

from typing import Optional

from pydantic import BaseModel, Field

from session_auth.domain.models.session import Identity, ProviderKind, Session, SessionStatus


class SignInRequest(BaseModel):
    """Request model for email/password sign-in"""

    email: str = Field(..., description="Account email address", examples=["ann@example.com"])
    password: str = Field(..., description="Account password")


class SignUpRequest(SignInRequest):
    """Request model for account creation"""

    display_name: str = Field(..., max_length=100, description="Display name", examples=["Ann"])


class FederatedBeginRequest(BaseModel):
    """Request model for starting a federated sign-in"""

    provider: ProviderKind = Field(..., description="Federated provider", examples=["apple.com"])


class FederatedChallengeResponse(BaseModel):
    """Challenge to embed in the federated provider's sign-in request"""

    provider: ProviderKind
    challenge: str = Field(..., description="SHA-256 hex digest of the pending nonce")
    scopes: list[str] = Field(default_factory=list, description="Scopes to request from the provider")
    expires_in: int = Field(..., description="Seconds until the attempt goes stale", examples=[600])


class FederatedCompleteRequest(BaseModel):
    """Request model for finishing a federated sign-in"""

    provider: ProviderKind
    id_token: str = Field(..., description="ID token issued by the federated provider")
    access_token: Optional[str] = Field(None, description="Provider access token, if issued")


class SessionResponse(BaseModel):
    """Session state as rendered by clients"""

    status: SessionStatus
    is_authenticated: bool
    is_loading: bool
    error_message: Optional[str] = None
    identity: Optional[Identity] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            status=session.status,
            is_authenticated=session.is_authenticated,
            is_loading=session.is_loading,
            error_message=session.error_message,
            identity=session.identity,
        )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "authenticated",
                    "is_authenticated": True,
                    "is_loading": False,
                    "error_message": None,
                    "identity": {
                        "id": "550e8400-e29b-41d4-a716-446655440000",
                        "email": "ann@example.com",
                        "display_name": "Ann",
                        "avatar_url": None,
                        "provider": "password",
                    },
                }
            ]
        }
    }


class SignOutResponse(BaseModel):
    """Sign-out response model"""

    message: str = Field(default="Signed out successfully")
    remote_acknowledged: bool = Field(
        ..., description="Whether the identity service confirmed the sign-out"
    )


class ErrorResponse(BaseModel):
    """Error response body"""

    error: str = Field(..., description="Error code", examples=["invalid_input"])
    message: str = Field(
        ..., description="Human-readable message", examples=["Please enter a valid email address"]
    )
