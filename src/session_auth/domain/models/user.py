"""Local Account Models

Purpose: Define the account record kept by the self-hosted identity backend

Key Components:
- StoredUser: Account with password hash and linked providers
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from session_auth.domain.models.session import RemoteUserRecord


def parse_utc_timestamp(timestamp_str: str) -> datetime:
    """Parse UTC timestamp string to datetime object"""
    if isinstance(timestamp_str, datetime):
        return timestamp_str
    return datetime.fromisoformat(timestamp_str.replace('Z', '+00:00'))


def to_json_compatible(value):
    """Convert datetime to JSON-compatible ISO format string"""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class StoredUser:
    """Account in the local user store

    Attributes:
        user_id: Unique identifier (UUID format)
        email: Account email address (may be absent for federated accounts)
        display_name: Human-readable display name
        created_at: Account creation timestamp
        password_hash: bcrypt hash, absent for federated-only accounts
        photo_url: Profile picture URI
        provider_ids: Linked providers in the order they were linked
        is_active: Account active status
    """
    user_id: str
    email: Optional[str]
    display_name: Optional[str]
    created_at: datetime
    password_hash: Optional[str] = None
    photo_url: Optional[str] = None
    provider_ids: list[str] = field(default_factory=list)
    is_active: bool = True

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "display_name": self.display_name,
            "created_at": to_json_compatible(self.created_at),
            "password_hash": self.password_hash,
            "photo_url": self.photo_url,
            "provider_ids": list(self.provider_ids),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'StoredUser':
        """Create from dictionary (JSON deserialization)"""
        return cls(
            user_id=data["user_id"],
            email=data.get("email"),
            display_name=data.get("display_name"),
            created_at=parse_utc_timestamp(data["created_at"]),
            password_hash=data.get("password_hash"),
            photo_url=data.get("photo_url"),
            provider_ids=data.get("provider_ids", []),
            is_active=data.get("is_active", True),
        )

    def to_record(self) -> RemoteUserRecord:
        """Public view of the account, without credentials"""
        return RemoteUserRecord(
            uid=self.user_id,
            email=self.email,
            display_name=self.display_name,
            photo_url=self.photo_url,
            provider_ids=list(self.provider_ids),
        )
