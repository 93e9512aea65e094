"""
Global user accounts, stored in the "accounts" sub-store.

Keys:
    user:{id}
    user_by_email:{email} -> id

Passwords are stored as bcrypt hashes with the salt embedded.
"""

from __future__ import annotations

import logging
from typing import Any

import bcrypt

from ..keyspace import primary_key, primary_prefix
from ..models import User
from ..storage.base import generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

USER = "user"
USER_BY_EMAIL = "user_by_email"
ACCOUNTS_STORE = "accounts"

BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt.

    Raises:
        ValueError: If password is empty
    """
    if not password:
        raise ValueError("Password cannot be empty")
    salt = bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Password verification failed: {e}")
        return False


def _email_key(email: str) -> str:
    return f"{USER_BY_EMAIL}:{email.strip().lower()}"


class UserRepository(BaseRepository[User]):
    model = User
    store_name = ACCOUNTS_STORE

    def create(
        self,
        email: str,
        password: str,
        role: str = "kid",
        username: str = "",
        full_name: str = "",
        user_id: str | None = None,
    ) -> User:
        """Create an account.

        Raises:
            ValueError: If the email is already registered
        """
        if self.find_by_email(email) is not None:
            raise ValueError(f"Email already registered: {email}")

        now = self._now()
        user = User(
            id=user_id or generate_id(),
            email=email.strip().lower(),
            username=username or email.split("@")[0],
            full_name=full_name,
            role=role,
            password_hash=hash_password(password),
            created_at=now,
            updated_at=now,
        )
        self._put_indexes([(_email_key(user.email), user.id)])
        self._save(primary_key(USER, user.id), user)
        logger.info(f"Created user {user.id}", extra={"user_id": user.id, "role": role})
        return user

    def find(self, user_id: str) -> User | None:
        return self._load(primary_key(USER, user_id))

    def find_by_email(self, email: str) -> User | None:
        key = _email_key(email)
        user_id = self._store.get(key)
        if user_id is None:
            return None
        user = self.find(user_id)
        if user is None:
            self._store.remove(key)
            logger.warning(f"Pruned dangling index entry {key}", extra={"index_key": key})
        return user

    def list(self, role: str | None = None) -> list[User]:
        users = [u for _, u in self._scan_prefix(primary_prefix(USER))]
        if role is not None:
            users = [u for u in users if u.role == role]
        return users

    def update(self, user_id: str, changes: dict[str, Any]) -> User | None:
        user = self.find(user_id)
        if user is None:
            return None

        changes = dict(changes)
        password = changes.pop("password", None)
        old_email = user.email
        apply_changes(user, changes, protected=("id", "password_hash", "created_at"))
        user.email = user.email.strip().lower()
        if password:
            user.password_hash = hash_password(password)
        user.updated_at = self._now()

        if user.email != old_email:
            self._put_indexes([(_email_key(user.email), user.id)])
            self._save(primary_key(USER, user_id), user)
            self._remove(_email_key(old_email))
            return user
        return self._save(primary_key(USER, user_id), user)

    def delete(self, user_id: str) -> bool:
        user = self.find(user_id)
        if user is None:
            return False
        self._remove(primary_key(USER, user_id))
        self._remove(_email_key(user.email))
        return True

    def verify_password(self, email: str, password: str) -> User | None:
        """Return the user if the credentials match an active account."""
        user = self.find_by_email(email)
        if user is None or not user.is_active:
            return None
        return user if check_password(password, user.password_hash) else None
