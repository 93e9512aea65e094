"""Academy (tenant) records and academy memberships."""

from __future__ import annotations

import logging
from typing import Any

from ..keyspace import (
    composite_key,
    index_key,
    index_name,
    index_prefix,
    key_suffix,
    primary_key,
    primary_prefix,
)
from ..models import Academy, Membership
from ..storage.base import generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

ACADEMY = "academy"
MEMBER = "academy_member"
MEMBER_BY_USER = index_name(MEMBER, "user")


class AcademyRepository(BaseRepository[Academy]):
    """Tenants, keyed academy:{id}."""

    model = Academy

    def create(
        self,
        name: str,
        name_ar: str = "",
        created_by: str = "system",
        academy_id: str | None = None,
        is_active: bool = True,
    ) -> Academy:
        now = self._now()
        academy = Academy(
            id=academy_id or generate_id(),
            name=name,
            name_ar=name_ar,
            is_active=is_active,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self._save(primary_key(ACADEMY, academy.id), academy)
        logger.info(f"Created academy {academy.id}", extra={"academy_id": academy.id})
        return academy

    def find(self, academy_id: str) -> Academy | None:
        return self._load(primary_key(ACADEMY, academy_id))

    def list(self) -> list[Academy]:
        """All academies sorted by name."""
        academies = [a for _, a in self._scan_prefix(primary_prefix(ACADEMY))]
        return sorted(academies, key=lambda a: (a.name.lower(), a.id))

    def list_active(self) -> list[Academy]:
        """Active academies in id order."""
        return [a for _, a in self._scan_prefix(primary_prefix(ACADEMY)) if a.is_active]

    def first_active_id(self) -> str | None:
        active = self.list_active()
        return active[0].id if active else None

    def update(self, academy_id: str, changes: dict[str, Any]) -> Academy | None:
        academy = self.find(academy_id)
        if academy is None:
            return None
        apply_changes(academy, changes, protected=("id", "created_at", "created_by"))
        academy.updated_at = self._now()
        return self._save(primary_key(ACADEMY, academy_id), academy)

    def delete(self, academy_id: str) -> bool:
        """Delete an academy. The bootstrap academy cannot be deleted."""
        if academy_id == self.default_academy_id:
            logger.warning("Refusing to delete the default academy")
            return False
        return self._remove(primary_key(ACADEMY, academy_id))

    def ensure_default_exists(self, created_by: str = "system") -> Academy:
        """Create the bootstrap academy if it is missing."""
        existing = self.find(self.default_academy_id)
        if existing is not None:
            return existing
        logger.info("Seeding default academy", extra={"academy_id": self.default_academy_id})
        return self.create(
            name="Default Academy",
            name_ar="الأكاديمية الافتراضية",
            created_by=created_by,
            academy_id=self.default_academy_id,
        )


class MembershipRepository(BaseRepository[Membership]):
    """Academy memberships.

    Keys:
        academy_member:{academyId}:{userId}
        academy_member_by_user:{userId}:{academyId} -> academyId
    """

    model = Membership

    def _key(self, academy_id: str, user_id: str) -> str:
        return composite_key(MEMBER, academy_id, user_id)

    def add(self, academy_id: str, user_id: str, role: str, created_by: str = "system") -> Membership:
        """Add a membership, or change the role of an existing one."""
        now = self._now()
        existing = self.find(academy_id, user_id)
        if existing is not None:
            existing.role = role
            existing.updated_at = now
            return self._save(self._key(academy_id, user_id), existing)

        membership = Membership(
            academy_id=academy_id,
            user_id=user_id,
            role=role,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self._put_indexes([(index_key(MEMBER_BY_USER, [user_id], academy_id), academy_id)])
        return self._save(self._key(academy_id, user_id), membership)

    def find(self, academy_id: str, user_id: str) -> Membership | None:
        return self._load(self._key(academy_id, user_id))

    def get_role(self, academy_id: str, user_id: str) -> str | None:
        membership = self.find(academy_id, user_id)
        return membership.role if membership else None

    def list_members(self, academy_id: str) -> list[Membership]:
        return [m for _, m in self._scan_prefix(composite_key(MEMBER, academy_id) + ":")]

    def list_for_user(self, user_id: str) -> list[Membership]:
        """Memberships of a user in lexicographic academy order."""
        return self._scan_index(
            index_prefix(MEMBER_BY_USER, [user_id]),
            lambda _key, academy_id: self._key(academy_id, user_id),
        )

    def list_academy_ids_for_user(self, user_id: str) -> list[str]:
        return [m.academy_id for m in self.list_for_user(user_id)]

    def get_roles_by_academy(self, user_id: str) -> dict[str, str]:
        return {m.academy_id: m.role for m in self.list_for_user(user_id)}

    def remove(self, academy_id: str, user_id: str) -> bool:
        removed = self._remove(self._key(academy_id, user_id))
        self._remove(index_key(MEMBER_BY_USER, [user_id], academy_id))
        return removed

    def remove_all_for_user(self, user_id: str) -> int:
        prefix = index_prefix(MEMBER_BY_USER, [user_id])
        count = 0
        for key, _ in self._scan_pointers(prefix):
            academy_id = key_suffix(key, prefix)[0]
            if self.remove(academy_id, user_id):
                count += 1
        return count
