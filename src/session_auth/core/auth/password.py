"""Email/password provider adapter."""

import logging

from session_auth.core.auth.provider import ProviderAdapter
from session_auth.domain.models import Identity, PasswordCredential, ProviderKind

logger = logging.getLogger(__name__)


class PasswordAdapter(ProviderAdapter):
    """Email/password sign-in and sign-up"""

    kind = ProviderKind.PASSWORD

    async def exchange_password_credential(self, email: str, password: str) -> Identity:
        """Authenticate with email and password.

        Raises:
            ProviderError: If the identity service rejects the credentials
            NetworkError: If the identity service is unreachable
        """
        credential = PasswordCredential(email=email, password=password)
        record = await self.backend.sign_in_with_password(credential)
        return self.to_identity(record)

    async def create_account(self, email: str, password: str, display_name: str) -> Identity:
        """Create an account carrying ``display_name``.

        The identity service does not take a display name at creation, so the
        account is created, its profile updated, and the record re-fetched.
        """
        credential = PasswordCredential(email=email, password=password)
        record = await self.backend.create_user(credential)
        await self.backend.update_profile(record.uid, display_name)
        record = await self.backend.reload_user(record.uid)

        if record.display_name != display_name:
            logger.warning(f"Display name of {record.uid} not reflected after profile update")
        return self.to_identity(record)
