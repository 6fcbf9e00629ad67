"""Session Routes

Purpose: FastAPI routes driving the authentication coordinator

The coordinator is created at startup and lives on ``app.state``; every
route works on that single session.

Key Endpoints:
- GET /api/v1/session: Current session state
- POST /api/v1/session/sign-in: Email/password sign-in
- POST /api/v1/session/sign-up: Email/password account creation
- POST /api/v1/session/federated/begin: Start federated sign-in (returns challenge)
- POST /api/v1/session/federated/complete: Finish federated sign-in
- POST /api/v1/session/federated/cancel: Abandon federated sign-in
- POST /api/v1/session/reload: Re-fetch the signed-in user
- POST /api/v1/session/sign-out: Sign out
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from session_auth.core.auth.errors import (
    AlreadyInProgressError,
    AuthError,
    InvalidInputError,
    InvalidStateError,
    NetworkError,
    ProviderError,
)
from session_auth.core.session.coordinator import AuthCoordinator
from session_auth.domain.models import (
    ErrorResponse,
    FederatedBeginRequest,
    FederatedChallengeResponse,
    FederatedCompleteRequest,
    SessionResponse,
    SignInRequest,
    SignOutResponse,
    SignUpRequest,
)

# Initialize router and logger
router = APIRouter(prefix="/api/v1/session", tags=["session"])
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInputError: 400,
    ProviderError: 401,
    InvalidStateError: 409,
    AlreadyInProgressError: 409,
    NetworkError: 503,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    401: {"model": ErrorResponse, "description": "Rejected by the identity service"},
    409: {"model": ErrorResponse, "description": "Invalid state or operation in progress"},
    503: {"model": ErrorResponse, "description": "Identity service unreachable"},
}


def get_coordinator(request: Request) -> AuthCoordinator:
    """Coordinator owned by the running application"""
    return request.app.state.coordinator


def to_http_error(error: AuthError) -> HTTPException:
    """Map an AuthError to an HTTP error response"""
    status_code = ERROR_STATUS.get(type(error), 500)
    body = ErrorResponse(error=error.code, message=error.message)
    return HTTPException(status_code=status_code, detail=body.model_dump())


@router.get("", response_model=SessionResponse)
async def get_session(coordinator: AuthCoordinator = Depends(get_coordinator)) -> SessionResponse:
    """Current session state"""
    return SessionResponse.from_session(coordinator.session)


@router.post("/sign-in", response_model=SessionResponse, responses=ERROR_RESPONSES)
async def sign_in(
    request: SignInRequest,
    coordinator: AuthCoordinator = Depends(get_coordinator),
) -> SessionResponse:
    """Sign in with email and password"""
    try:
        await coordinator.sign_in_with_password(request.email, request.password)
    except AuthError as e:
        raise to_http_error(e)
    return SessionResponse.from_session(coordinator.session)


@router.post("/sign-up", response_model=SessionResponse, status_code=201, responses=ERROR_RESPONSES)
async def sign_up(
    request: SignUpRequest,
    coordinator: AuthCoordinator = Depends(get_coordinator),
) -> SessionResponse:
    """Create an email/password account and sign in"""
    try:
        await coordinator.sign_up_with_password(
            request.email, request.password, request.display_name
        )
    except AuthError as e:
        raise to_http_error(e)
    return SessionResponse.from_session(coordinator.session)


@router.post(
    "/federated/begin", response_model=FederatedChallengeResponse, responses=ERROR_RESPONSES
)
async def begin_federated(
    request: FederatedBeginRequest,
    coordinator: AuthCoordinator = Depends(get_coordinator),
) -> FederatedChallengeResponse:
    """Start a federated sign-in

    Returns the challenge to pass as the provider's ``nonce`` parameter.
    """
    try:
        pending = coordinator.begin_federated_sign_in(request.provider)
    except AuthError as e:
        raise to_http_error(e)
    return FederatedChallengeResponse(
        provider=pending.provider,
        challenge=pending.challenge,
        scopes=coordinator.federated_scopes(pending.provider),
        expires_in=coordinator.nonce_ttl_seconds,
    )


@router.post("/federated/complete", response_model=SessionResponse, responses=ERROR_RESPONSES)
async def complete_federated(
    request: FederatedCompleteRequest,
    coordinator: AuthCoordinator = Depends(get_coordinator),
) -> SessionResponse:
    """Finish a federated sign-in with the provider's ID token"""
    try:
        await coordinator.complete_federated_sign_in(
            request.provider, request.id_token, request.access_token
        )
    except AuthError as e:
        raise to_http_error(e)
    return SessionResponse.from_session(coordinator.session)


@router.post("/federated/cancel", response_model=SessionResponse)
async def cancel_federated(
    coordinator: AuthCoordinator = Depends(get_coordinator),
) -> SessionResponse:
    """Abandon the pending federated sign-in"""
    coordinator.cancel_federated_sign_in()
    return SessionResponse.from_session(coordinator.session)


@router.post("/reload", response_model=SessionResponse, responses=ERROR_RESPONSES)
async def reload(coordinator: AuthCoordinator = Depends(get_coordinator)) -> SessionResponse:
    """Re-fetch the signed-in user's profile"""
    try:
        await coordinator.reload_identity()
    except AuthError as e:
        raise to_http_error(e)
    return SessionResponse.from_session(coordinator.session)


@router.post("/sign-out", response_model=SignOutResponse)
async def sign_out(coordinator: AuthCoordinator = Depends(get_coordinator)) -> SignOutResponse:
    """Sign out; always clears the local session"""
    remote_acknowledged = await coordinator.sign_out()
    if not remote_acknowledged:
        logger.warning("Sign-out completed locally without remote acknowledgement")
    return SignOutResponse(remote_acknowledged=remote_acknowledged)
