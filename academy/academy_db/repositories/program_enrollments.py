"""
Program enrollments and the progression ledger they carry.

Keys:
    program_enrollment:{academyId}:{programId}:{userId}
    program_enrollment_by_user:{academyId}:{userId}:{programId} -> programId
"""

from __future__ import annotations

import logging
from typing import Any

from ..keyspace import composite_key, index_key, index_name, index_prefix
from ..ledger import MAX_COACH_NOTES, apply_coach_note
from ..models import PROGRAM_ENROLLMENT_STATUSES, CoachNote, ProgramEnrollment
from ..storage.base import generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

PROGRAM_ENROLLMENT = "program_enrollment"
BY_USER = index_name(PROGRAM_ENROLLMENT, "user")


class ProgramEnrollmentRepository(BaseRepository[ProgramEnrollment]):
    model = ProgramEnrollment

    def _key(self, academy_id: str, program_id: str, user_id: str) -> str:
        return composite_key(PROGRAM_ENROLLMENT, academy_id, program_id, user_id)

    def _index(self, academy_id: str, program_id: str, user_id: str) -> str:
        return index_key(BY_USER, [academy_id, user_id], program_id)

    def find(self, academy_id: str, program_id: str, user_id: str) -> ProgramEnrollment | None:
        return self._load(self._key(academy_id, program_id, user_id))

    def upsert(
        self,
        academy_id: str,
        program_id: str,
        user_id: str,
        current_level_id: str | None = None,
    ) -> ProgramEnrollment:
        """Enroll a player, or refresh an existing enrollment's level."""
        now = self._now()
        key = self._key(academy_id, program_id, user_id)
        existing = self.find(academy_id, program_id, user_id)
        if existing is not None:
            if current_level_id is not None:
                existing.current_level_id = current_level_id
            existing.updated_at = now
            return self._save(key, existing)

        enrollment = ProgramEnrollment(
            id=generate_id(),
            academy_id=academy_id,
            program_id=program_id,
            user_id=user_id,
            status="active",
            joined_at=now,
            current_level_id=current_level_id,
            created_at=now,
            updated_at=now,
        )
        self._put_indexes([(self._index(academy_id, program_id, user_id), program_id)])
        logger.info(
            f"Enrolled user {user_id} in program {program_id}",
            extra={"academy_id": academy_id, "program_id": program_id, "user_id": user_id},
        )
        return self._save(key, enrollment)

    def update(
        self,
        academy_id: str,
        program_id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> ProgramEnrollment | None:
        """Update status or current level. Identity and ledger fields are fixed."""
        status = changes.get("status")
        if status is not None and status not in PROGRAM_ENROLLMENT_STATUSES:
            raise ValueError(f"Unknown enrollment status: {status}")
        enrollment = self.find(academy_id, program_id, user_id)
        if enrollment is None:
            return None
        apply_changes(
            enrollment,
            changes,
            protected=(
                "id", "academy_id", "program_id", "user_id", "joined_at", "created_at",
                "points_total", "dropped_points", "coach_notes",
            ),
        )
        enrollment.updated_at = self._now()
        return self._save(self._key(academy_id, program_id, user_id), enrollment)

    def remove(self, academy_id: str, program_id: str, user_id: str) -> bool:
        removed = self._remove(self._key(academy_id, program_id, user_id))
        self._remove(self._index(academy_id, program_id, user_id))
        return removed

    def list_by_program(self, academy_id: str, program_id: str) -> list[ProgramEnrollment]:
        """Enrollments of a program sorted by user id."""
        prefix = composite_key(PROGRAM_ENROLLMENT, academy_id, program_id) + ":"
        return sorted((e for _, e in self._scan_prefix(prefix)), key=lambda e: e.user_id)

    def list_by_user(self, academy_id: str, user_id: str) -> list[ProgramEnrollment]:
        """A player's enrollments in an academy, most recently joined first."""
        enrollments = self._scan_index(
            index_prefix(BY_USER, [academy_id, user_id]),
            lambda _key, program_id: self._key(academy_id, program_id, user_id),
        )
        return sorted(enrollments, key=lambda e: e.joined_at, reverse=True)

    def delete_for_program(self, academy_id: str, program_id: str) -> int:
        count = 0
        for enrollment in self.list_by_program(academy_id, program_id):
            if self.remove(academy_id, program_id, enrollment.user_id):
                count += 1
        return count

    def append_coach_note(
        self,
        academy_id: str,
        program_id: str,
        user_id: str,
        coach_user_id: str,
        points_delta: Any = None,
        comment: str | None = None,
        max_notes: int = MAX_COACH_NOTES,
    ) -> ProgramEnrollment | None:
        """Record a coach note and apply its points delta.

        Returns:
            Updated enrollment, or None if the player is not enrolled
        """
        enrollment = self.find(academy_id, program_id, user_id)
        if enrollment is None:
            return None
        now = self._now()
        note = CoachNote(
            id=generate_id(),
            coach_user_id=coach_user_id,
            created_at=now,
            points_delta=points_delta,
            comment=comment,
        )
        updated = apply_coach_note(enrollment, note, max_notes=max_notes, now=now)
        return self._save(self._key(academy_id, program_id, user_id), updated)
