"""Provider adapter abstraction.

Each credential provider (password, Apple, Google) has an adapter that turns
its credential material into a credential the identity backend accepts and
maps the resulting user record into a normalized Identity.
"""

from abc import ABC, abstractmethod
from typing import Optional

from session_auth.domain.models import Identity, ProviderKind, RemoteUserRecord
from session_auth.infrastructure.identity.backend import IdentityBackend


def canonical_provider(provider_ids: list[str]) -> ProviderKind:
    """Provider an account is attributed to.

    The first provider the record declares wins. Unknown provider ids, and
    records without any, are attributed to password sign-in.
    """
    if not provider_ids:
        return ProviderKind.PASSWORD
    try:
        return ProviderKind(provider_ids[0])
    except ValueError:
        return ProviderKind.PASSWORD


def identity_from_record(record: Optional[RemoteUserRecord]) -> Optional[Identity]:
    """Map an identity-service user record to an Identity"""
    if record is None:
        return None
    return Identity(
        id=record.uid,
        email=record.email,
        display_name=record.display_name,
        avatar_url=record.photo_url,
        provider=canonical_provider(record.provider_ids),
    )


class ProviderAdapter(ABC):
    """Base for all provider adapters.

    Attributes:
        kind: Provider this adapter handles
        backend: Identity backend credentials are exchanged with
    """

    def __init__(self, backend: IdentityBackend):
        self.backend = backend

    @property
    @abstractmethod
    def kind(self) -> ProviderKind:
        """Provider this adapter handles"""

    def to_identity(self, record: RemoteUserRecord) -> Identity:
        return identity_from_record(record)

    async def refresh(self, uid: str) -> Identity:
        """Re-fetch the signed-in account's record"""
        record = await self.backend.reload_user(uid)
        return self.to_identity(record)
