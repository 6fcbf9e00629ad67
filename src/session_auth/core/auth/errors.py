"""Authentication error hierarchy.

Every failure a coordinator operation can report derives from AuthError.
The message is meant for display to the user.
"""


class AuthError(Exception):
    """Authentication failed."""

    code = "auth_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(AuthError):
    """Local validation failed; nothing was sent to the identity service."""

    code = "invalid_input"


class InvalidStateError(AuthError):
    """Operation invoked without its preconditions (e.g. no pending nonce)."""

    code = "invalid_state"


class AlreadyInProgressError(AuthError):
    """Another authentication operation is still in flight."""

    code = "already_in_progress"


class NetworkError(AuthError):
    """Timeout or transport failure talking to the identity service."""

    code = "network_error"


class ProviderError(AuthError):
    """The identity service rejected the request."""

    code = "provider_error"
