"""Federated provider adapters (Sign in with Apple, Google Sign-In).

The client embeds the pending nonce's challenge in the provider's sign-in
request; the provider returns an ID token whose ``nonce`` claim echoes it.
The adapter checks that binding before exchanging the token together with
the raw nonce.
"""

import logging
from typing import Optional

from jose import jwt, JWTError

from session_auth.core.auth.errors import InvalidStateError
from session_auth.core.auth.provider import ProviderAdapter
from session_auth.domain.models import FederatedCredential, Identity, PendingNonce, ProviderKind

logger = logging.getLogger(__name__)


class FederatedAdapter(ProviderAdapter):
    """Base for OAuth-style providers that issue nonce-bound ID tokens.

    Attributes:
        scopes: Scopes the client should request from the provider
    """

    scopes: list[str] = []

    def build_credential(
        self,
        id_token: str,
        pending: PendingNonce,
        access_token: Optional[str] = None,
    ) -> FederatedCredential:
        """Bind a provider ID token to the nonce of its attempt.

        Raises:
            InvalidStateError: If the token was not issued for this attempt
        """
        token_nonce = self._token_nonce(id_token)
        if token_nonce != pending.challenge:
            logger.warning(f"{self.kind.value} ID token does not match the pending nonce")
            raise InvalidStateError("Invalid state: ID token does not match the pending sign-in.")

        return FederatedCredential(
            provider=self.kind,
            id_token=id_token,
            raw_nonce=pending.raw_nonce,
            access_token=access_token,
        )

    async def exchange_federated_credential(self, credential: FederatedCredential) -> Identity:
        """Sign in to the identity service with a provider credential.

        Raises:
            ProviderError: If the identity service rejects the credential
            NetworkError: If the identity service is unreachable
        """
        record = await self.backend.sign_in_with_credential(credential)
        return self.to_identity(record)

    def _token_nonce(self, id_token: str) -> Optional[str]:
        # Signature is verified by the identity service, not here
        try:
            claims = jwt.get_unverified_claims(id_token)
        except JWTError:
            return None
        nonce = claims.get("nonce")
        return nonce if isinstance(nonce, str) else None


class AppleAdapter(FederatedAdapter):
    """Sign in with Apple"""

    kind = ProviderKind.APPLE
    scopes = ["name", "email"]

    def build_credential(
        self,
        id_token: str,
        pending: PendingNonce,
        access_token: Optional[str] = None,
    ) -> FederatedCredential:
        # Apple issues no access token usable by the identity service
        return super().build_credential(id_token, pending)


class GoogleAdapter(FederatedAdapter):
    """Google Sign-In"""

    kind = ProviderKind.GOOGLE
    scopes = ["openid", "email", "profile"]
