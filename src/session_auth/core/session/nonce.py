"""Pending nonce for federated sign-in.

The raw nonce stays in this process; only its SHA-256 hex digest (the
challenge) is given to the federated provider, which echoes it back in the
ID token's ``nonce`` claim.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from session_auth.core.auth.errors import InvalidStateError
from session_auth.domain.models import PendingNonce, ProviderKind

logger = logging.getLogger(__name__)

NONCE_ENTROPY_BYTES = 32


def generate_raw_nonce(entropy_bytes: int = NONCE_ENTROPY_BYTES) -> str:
    """Random URL-safe nonce carrying ``entropy_bytes`` bytes of entropy"""
    if entropy_bytes < NONCE_ENTROPY_BYTES:
        raise ValueError(f"Nonce entropy must be at least {NONCE_ENTROPY_BYTES} bytes")
    return secrets.token_urlsafe(entropy_bytes)


def nonce_challenge(raw_nonce: str) -> str:
    """SHA-256 hex digest of ``raw_nonce``"""
    return hashlib.sha256(raw_nonce.encode("utf-8")).hexdigest()


class NonceSlot:
    """Holds at most one PendingNonce"""

    def __init__(self, ttl_seconds: int):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._pending: Optional[PendingNonce] = None

    @property
    def pending(self) -> Optional[PendingNonce]:
        return self._pending

    def issue(self, provider: ProviderKind) -> PendingNonce:
        """Create a nonce for ``provider``, replacing any earlier attempt"""
        if self._pending is not None:
            logger.info(
                f"Replacing pending {self._pending.provider.value} sign-in attempt "
                f"with a new {provider.value} attempt"
            )
        raw = generate_raw_nonce()
        self._pending = PendingNonce(
            provider=provider,
            raw_nonce=raw,
            challenge=nonce_challenge(raw),
        )
        return self._pending

    def take(self, provider: ProviderKind) -> PendingNonce:
        """Consume the pending nonce for ``provider``.

        The slot is empty afterwards whether or not the nonce was usable.

        Raises:
            InvalidStateError: No nonce, nonce expired, or issued for another provider
        """
        pending, self._pending = self._pending, None

        if pending is None:
            raise InvalidStateError("Invalid state: missing nonce.")
        if datetime.now(timezone.utc) - pending.issued_at > self.ttl:
            raise InvalidStateError("Invalid state: sign-in attempt expired.")
        if pending.provider != provider:
            raise InvalidStateError(
                f"Invalid state: pending sign-in is for {pending.provider.value}, "
                f"not {provider.value}."
            )
        return pending

    def clear(self) -> bool:
        """Drop the pending nonce; returns whether one was present"""
        had_pending = self._pending is not None
        self._pending = None
        return had_pending
