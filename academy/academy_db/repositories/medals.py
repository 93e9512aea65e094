"""
Medals and medals awarded to students.

Keys:
    medal:{id}
    student_medal:{id}
    student_medal_by_student:{academyId}:{studentId}:{id} -> id

Older stores kept every medal in one array under "medals" and every award
under "studentMedals". The first access splits those arrays into per-record
keys (filling academy_id with the default academy) and removes the array.
"""

from __future__ import annotations

import logging
from typing import Any

from ..config import DEFAULT_ACADEMY_ID
from ..keyspace import index_key, index_name, index_prefix, primary_key, primary_prefix
from ..models import Medal, StudentMedal
from ..storage.base import KeyValueStore, generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

MEDAL = "medal"
STUDENT_MEDAL = "student_medal"
BY_STUDENT = index_name(STUDENT_MEDAL, "student")

LEGACY_MEDALS_KEY = "medals"
LEGACY_STUDENT_MEDALS_KEY = "studentMedals"

_LEGACY_FIELDS = {
    "nameAr": "name_ar",
    "descriptionAr": "description_ar",
    "isActive": "is_active",
    "createdAt": "created_at",
    "studentId": "student_id",
    "medalId": "medal_id",
    "courseId": "course_id",
    "attendanceId": "attendance_id",
    "awardedBy": "awarded_by",
    "awardedAt": "awarded_at",
    "academyId": "academy_id",
}


def _snake_case(item: dict[str, Any]) -> dict[str, Any]:
    return {_LEGACY_FIELDS.get(k, k): v for k, v in item.items()}


class _AwardRecords(BaseRepository[StudentMedal]):
    """Primary and index plumbing for student_medal records."""

    model = StudentMedal

    def key(self, award_id: str) -> str:
        return primary_key(STUDENT_MEDAL, award_id)

    def index(self, award: StudentMedal) -> str:
        return index_key(BY_STUDENT, [award.academy_id, award.student_id], award.id)

    def put(self, award: StudentMedal) -> StudentMedal:
        self._put_indexes([(self.index(award), award.id)])
        return self._save(self.key(award.id), award)

    def find(self, award_id: str) -> StudentMedal | None:
        return self._load(self.key(award_id))

    def remove(self, award: StudentMedal) -> bool:
        removed = self._remove(self.key(award.id))
        self._remove(self.index(award))
        return removed

    def by_student(self, academy_id: str, student_id: str) -> list[StudentMedal]:
        return self._scan_index(
            index_prefix(BY_STUDENT, [academy_id, student_id]),
            lambda _key, award_id: self.key(award_id),
        )


class MedalRepository(BaseRepository[Medal]):
    model = Medal

    def __init__(self, store: KeyValueStore, default_academy_id: str = DEFAULT_ACADEMY_ID) -> None:
        super().__init__(store, default_academy_id)
        self._awards = _AwardRecords(self._store, default_academy_id)

    # Legacy shape

    def _migrate_legacy(self) -> None:
        medals = self._store.get(LEGACY_MEDALS_KEY)
        if isinstance(medals, list):
            for item in medals:
                medal, _ = Medal.decode(_snake_case(item), self.default_academy_id)
                self._save(primary_key(MEDAL, medal.id), medal)
            self._store.remove(LEGACY_MEDALS_KEY)
            logger.info(f"Migrated {len(medals)} medals from legacy array")

        awards = self._store.get(LEGACY_STUDENT_MEDALS_KEY)
        if isinstance(awards, list):
            for item in awards:
                award, _ = StudentMedal.decode(_snake_case(item), self.default_academy_id)
                self._awards.put(award)
            self._store.remove(LEGACY_STUDENT_MEDALS_KEY)
            logger.info(f"Migrated {len(awards)} student medals from legacy array")

    # Medals

    def create(self, academy_id: str, fields: dict[str, Any]) -> Medal:
        self._migrate_legacy()
        medal = Medal(id=generate_id(), academy_id=academy_id, created_at=self._now())
        apply_changes(medal, fields, protected=("id", "academy_id", "created_at"))
        return self._save(primary_key(MEDAL, medal.id), medal)

    def find(self, medal_id: str) -> Medal | None:
        self._migrate_legacy()
        return self._load(primary_key(MEDAL, medal_id))

    def list(self, academy_id: str, active_only: bool = False) -> list[Medal]:
        self._migrate_legacy()
        return [
            m
            for _, m in self._scan_prefix(primary_prefix(MEDAL))
            if m.academy_id == academy_id and (not active_only or m.is_active)
        ]

    def update(self, medal_id: str, changes: dict[str, Any]) -> Medal | None:
        medal = self.find(medal_id)
        if medal is None:
            return None
        apply_changes(medal, changes, protected=("id", "academy_id", "created_at"))
        return self._save(primary_key(MEDAL, medal_id), medal)

    def delete(self, medal_id: str) -> bool:
        self._migrate_legacy()
        return self._remove(primary_key(MEDAL, medal_id))

    # Awards

    def award(
        self,
        academy_id: str,
        student_id: str,
        medal_id: str,
        awarded_by: str,
        course_id: str | None = None,
        attendance_id: str | None = None,
        notes: str | None = None,
    ) -> StudentMedal:
        self._migrate_legacy()
        award = StudentMedal(
            id=generate_id(),
            academy_id=academy_id,
            student_id=student_id,
            medal_id=medal_id,
            course_id=course_id,
            attendance_id=attendance_id,
            awarded_by=awarded_by,
            awarded_at=self._now(),
            notes=notes,
        )
        return self._awards.put(award)

    def remove_award(self, award_id: str) -> bool:
        self._migrate_legacy()
        award = self._awards.find(award_id)
        if award is None:
            return False
        return self._awards.remove(award)

    def list_awards(
        self,
        academy_id: str,
        student_id: str,
        course_id: str | None = None,
    ) -> list[StudentMedal]:
        """Awards of a student, optionally limited to one course."""
        self._migrate_legacy()
        awards = self._awards.by_student(academy_id, student_id)
        return [a for a in awards if course_id is None or a.course_id == course_id]
