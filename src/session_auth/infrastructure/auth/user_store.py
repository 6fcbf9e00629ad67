"""User Storage System

Purpose: Handle account storage and retrieval for the local identity backend

Accounts are created either from an email/password sign-up or from the
first sign-in with a federated provider, and can later gain further
linked providers.

Key Features:
- Email uniqueness (case-insensitive)
- Federated subject lookup per provider
- Linked providers kept in link order
- Auto-generated user IDs

Storage Schema:
- auth:user:{user_id} -> {user_json}
- auth:email:{email} -> {user_id}
- auth:federated:{provider_id}:{subject} -> {user_id}
- auth:user_list -> [{user_id}, ...]
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from redis.asyncio import Redis

from session_auth.domain.models import StoredUser

logger = logging.getLogger(__name__)


class UserStore:
    """Account storage on Redis

    Redis errors are logged and re-raised so the backend can report them
    as network failures.
    """

    def __init__(self, redis_client: Redis):
        """Initialize user store

        Args:
            redis_client: Redis connection for user storage
        """
        self.redis = redis_client

        # Redis key patterns
        self.user_key_pattern = "auth:user:{}"
        self.email_key_pattern = "auth:email:{}"
        self.federated_key_pattern = "auth:federated:{}:{}"
        self.user_list_key = "auth:user_list"

    async def get_user(self, user_id: str) -> Optional[StoredUser]:
        """Get user by ID

        Args:
            user_id: User identifier

        Returns:
            StoredUser if found, None otherwise
        """
        if not user_id:
            return None

        user_data = await self._redis_get(self.user_key_pattern.format(user_id))
        if not user_data:
            return None

        return StoredUser.from_dict(json.loads(user_data))

    async def get_user_by_email(self, email: str) -> Optional[StoredUser]:
        """Get user by email address

        Args:
            email: Email address to search for

        Returns:
            StoredUser if found, None otherwise
        """
        if not email:
            return None

        user_id = await self._redis_get(self.email_key_pattern.format(email.lower()))
        if not user_id:
            return None

        return await self.get_user(user_id)

    async def get_user_by_federated_subject(
        self, provider_id: str, subject: str
    ) -> Optional[StoredUser]:
        """Get the account linked to a federated provider subject"""
        user_id = await self._redis_get(self.federated_key_pattern.format(provider_id, subject))
        if not user_id:
            return None

        return await self.get_user(user_id)

    async def create_user(
        self,
        provider_id: str,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
        federated_subject: Optional[str] = None,
    ) -> StoredUser:
        """Create new account

        Args:
            provider_id: Provider the account is first created with
            email: Account email address (optional for federated accounts)
            password_hash: bcrypt hash for email/password accounts
            display_name: Human-readable display name (optional)
            photo_url: Profile picture URI (optional)
            federated_subject: Provider subject for federated accounts

        Returns:
            Created StoredUser

        Raises:
            ValueError: If the email is already registered
        """
        if email:
            email = email.strip().lower()
            if await self.get_user_by_email(email):
                raise ValueError("The email address is already in use by another account.")

        user = StoredUser(
            user_id=str(uuid.uuid4()),
            email=email,
            display_name=display_name,
            created_at=datetime.now(timezone.utc),
            password_hash=password_hash,
            photo_url=photo_url,
            provider_ids=[provider_id],
        )

        await self._redis_set(self.user_key_pattern.format(user.user_id), json.dumps(user.to_dict()))
        if email:
            await self._redis_set(self.email_key_pattern.format(email), user.user_id)
        if federated_subject:
            await self._redis_set(
                self.federated_key_pattern.format(provider_id, federated_subject), user.user_id
            )
        await self._redis_sadd(self.user_list_key, user.user_id)

        logger.info(f"Created user {user.user_id} via {provider_id}")
        return user

    async def update_user(self, user: StoredUser) -> StoredUser:
        """Update existing user

        Args:
            user: StoredUser with updated information

        Returns:
            Updated StoredUser

        Raises:
            ValueError: If user not found
        """
        existing_user = await self.get_user(user.user_id)
        if not existing_user:
            raise ValueError(f"User {user.user_id} not found")

        await self._redis_set(self.user_key_pattern.format(user.user_id), json.dumps(user.to_dict()))

        logger.info(f"Updated user {user.user_id}")
        return user

    async def link_provider(self, user: StoredUser, provider_id: str, subject: str) -> StoredUser:
        """Attach a federated provider to an account, keeping link order"""
        await self._redis_set(self.federated_key_pattern.format(provider_id, subject), user.user_id)
        if provider_id in user.provider_ids:
            return user

        user.provider_ids.append(provider_id)
        logger.info(f"Linked {provider_id} to user {user.user_id}")
        return await self.update_user(user)

    async def delete_user(self, user_id: str) -> bool:
        """Delete user account

        Args:
            user_id: User identifier

        Returns:
            True if user was deleted successfully
        """
        user = await self.get_user(user_id)
        if not user:
            return False

        await self._redis_delete(self.user_key_pattern.format(user_id))
        if user.email:
            await self._redis_delete(self.email_key_pattern.format(user.email.lower()))
        await self._redis_srem(self.user_list_key, user_id)

        logger.info(f"Deleted user {user_id}")
        return True

    # Redis async wrapper methods
    async def _redis_set(self, key: str, value: str) -> None:
        """Set Redis key"""
        try:
            return await self.redis.set(key, value)
        except Exception as e:
            logger.error(f"Redis SET failed for key {key}: {e}")
            raise

    async def _redis_get(self, key: str) -> Optional[str]:
        """Get Redis key value"""
        try:
            result = await self.redis.get(key)
            return result if result else None
        except Exception as e:
            logger.error(f"Redis GET failed for key {key}: {e}")
            raise

    async def _redis_delete(self, key: str) -> None:
        """Delete Redis key"""
        try:
            return await self.redis.delete(key)
        except Exception as e:
            logger.error(f"Redis DELETE failed for key {key}: {e}")
            raise

    async def _redis_sadd(self, key: str, value: str) -> None:
        """Add to Redis set"""
        try:
            return await self.redis.sadd(key, value)
        except Exception as e:
            logger.error(f"Redis SADD failed for key {key}: {e}")
            raise

    async def _redis_srem(self, key: str, value: str) -> None:
        """Remove from Redis set"""
        try:
            return await self.redis.srem(key, value)
        except Exception as e:
            logger.error(f"Redis SREM failed for key {key}: {e}")
            raise
