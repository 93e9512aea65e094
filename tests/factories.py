"""
Builders for records used across tests.
"""

from academy.academy_db.models import User
from academy.academy_db.repositories import AcademyRepository, MembershipRepository, UserRepository
from academy.academy_db.tenancy import AcademyContext


def make_user(user_id: str, role: str = "coach") -> User:
    """Build an account without touching the store."""
    return User(id=user_id, email=f"{user_id}@example.com", username=user_id, role=role)


def add_user(store, user_id: str, role: str = "coach") -> User:
    """Persist an account with a fixed id."""
    return UserRepository(store).create(
        email=f"{user_id}@example.com", password="secret", role=role, user_id=user_id
    )


def add_academy(store, academy_id: str, name: str = "", is_active: bool = True):
    return AcademyRepository(store).create(
        name=name or academy_id.title(), academy_id=academy_id, is_active=is_active
    )


def add_member(store, academy_id: str, user_id: str, role: str) -> None:
    MembershipRepository(store).add(academy_id, user_id, role)


def context(user_id: str, academy_id: str, academy_role: str, global_role: str = "coach") -> AcademyContext:
    """Resolved academy context for calling actions directly."""
    return AcademyContext(
        user=make_user(user_id, global_role),
        academy_id=academy_id,
        academy_role=academy_role,
    )
