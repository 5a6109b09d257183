"""
Credential store.

Owns user records and their bcrypt password hashes. Every value returned
from here is a ``PublicUser``; the hash never leaves this module.
"""

import base64
import hashlib
import logging
import uuid
from typing import Dict, Optional

import bcrypt

from .errors import ValidationFailure
from api_usage_guard.storage.base import DuplicateKeyError, UserStore
from api_usage_guard.storage.models import PublicUser, User

logger = logging.getLogger(__name__)

DEFAULT_BCRYPT_ROUNDS = 10

_UPDATABLE_FIELDS = {"name", "email"}


def _prepare_password(password: str) -> bytes:
    """Pre-hash with SHA-256 so passwords longer than bcrypt's 72-byte limit still count in full."""
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(_prepare_password(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_prepare_password(password), password_hash.encode("utf-8"))


class CredentialStore:
    """User accounts with salted password hashes."""

    def __init__(self, users: UserStore, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS):
        if not 4 <= bcrypt_rounds <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        self.users = users
        self.bcrypt_rounds = bcrypt_rounds
        self._dummy_hash: Optional[str] = None

    def _hash_for_unknown_user(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = hash_password(uuid.uuid4().hex, self.bcrypt_rounds)
        return self._dummy_hash

    def create_user(self, name: str, email: str, password: str) -> PublicUser:
        """Create a user and return its public representation.

        Raises:
            ValidationFailure: If a field is missing or the email is taken
        """
        if not name or not email or not password:
            raise ValidationFailure("Missing required fields")

        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email,
            password_hash=hash_password(password, self.bcrypt_rounds),
        )
        try:
            self.users.create(user)
        except DuplicateKeyError:
            raise ValidationFailure("Email already registered")

        logger.info("Created user %s", user.id)
        return user.to_public()

    def get_user(self, user_id: str) -> Optional[PublicUser]:
        user = self.users.find_by_id(user_id)
        return user.to_public() if user else None

    def update_user(self, user_id: str, changes: Dict[str, str]) -> Optional[PublicUser]:
        """Update ``name`` and/or ``email``.

        Raises:
            ValidationFailure: On unknown fields or an email already in use
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Fields cannot be updated: {sorted(unknown)}")
        try:
            user = self.users.update(user_id, changes)
        except DuplicateKeyError:
            raise ValidationFailure("Email already registered")
        return user.to_public() if user else None

    def delete_user(self, user_id: str) -> Optional[Dict[str, str]]:
        if not self.users.delete(user_id):
            return None
        logger.info("Deleted user %s", user_id)
        return {"message": "User deleted"}

    def authenticate(self, email: str, password: str) -> Optional[PublicUser]:
        """Return the user for valid credentials, None otherwise.

        Unknown email and wrong password both return None, and both cost
        one bcrypt comparison.
        """
        user = self.users.find_by_email(email) if email else None
        if user is None:
            verify_password(password or "", self._hash_for_unknown_user())
            return None
        if not verify_password(password or "", user.password_hash):
            return None
        return user.to_public()
