"""Credential provider abstraction layer.

Supports several credential providers behind one identity backend:
- password: Email/password accounts
- apple.com: Sign in with Apple
- google.com: Google Sign-In
"""

from .errors import (
    AlreadyInProgressError,
    AuthError,
    InvalidInputError,
    InvalidStateError,
    NetworkError,
    ProviderError,
)
from .provider import ProviderAdapter, identity_from_record
from .password import PasswordAdapter
from .federated import AppleAdapter, FederatedAdapter, GoogleAdapter
from .factory import build_adapters, get_identity_backend, get_identity_cache

__all__ = [
    "AuthError",
    "InvalidInputError",
    "InvalidStateError",
    "AlreadyInProgressError",
    "NetworkError",
    "ProviderError",
    "ProviderAdapter",
    "PasswordAdapter",
    "FederatedAdapter",
    "AppleAdapter",
    "GoogleAdapter",
    "identity_from_record",
    "build_adapters",
    "get_identity_backend",
    "get_identity_cache",
]
