"""Courses and course enrollments (payment tracking)."""

from __future__ import annotations

import logging
from typing import Any

from ..keyspace import primary_key, primary_prefix
from ..models import PAYMENT_STATUSES, Course, Enrollment
from ..storage.base import generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

COURSE = "course"
ENROLLMENT = "enrollment"

_PROTECTED = ("id", "academy_id", "created_at")


class CourseRepository(BaseRepository[Course]):
    model = Course

    def create(self, academy_id: str, fields: dict[str, Any]) -> Course:
        now = self._now()
        course = Course(id=generate_id(), academy_id=academy_id, created_at=now, updated_at=now)
        apply_changes(course, fields, protected=_PROTECTED)
        return self._save(primary_key(COURSE, course.id), course)

    def find(self, course_id: str) -> Course | None:
        return self._load(primary_key(COURSE, course_id))

    def list(
        self,
        academy_id: str,
        coach_id: str | None = None,
        active_only: bool = False,
    ) -> list[Course]:
        """Courses of an academy, newest first."""
        courses = [
            c
            for _, c in self._scan_prefix(primary_prefix(COURSE))
            if c.academy_id == academy_id
            and (coach_id is None or c.coach_id == coach_id)
            and (not active_only or c.is_active)
        ]
        return sorted(courses, key=lambda c: c.created_at, reverse=True)

    def update(self, course_id: str, changes: dict[str, Any]) -> Course | None:
        course = self.find(course_id)
        if course is None:
            return None
        apply_changes(course, changes, protected=_PROTECTED)
        course.updated_at = self._now()
        return self._save(primary_key(COURSE, course_id), course)

    def delete(self, course_id: str) -> bool:
        return self._remove(primary_key(COURSE, course_id))


class EnrollmentRepository(BaseRepository[Enrollment]):
    """Course enrollments, keyed enrollment:{id}."""

    model = Enrollment

    def create(
        self,
        academy_id: str,
        student_id: str,
        course_id: str,
        parent_id: str,
        notes: str | None = None,
    ) -> Enrollment:
        now = self._now()
        enrollment = Enrollment(
            id=generate_id(),
            academy_id=academy_id,
            student_id=student_id,
            course_id=course_id,
            parent_id=parent_id,
            payment_status="pending",
            enrollment_date=now,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        return self._save(primary_key(ENROLLMENT, enrollment.id), enrollment)

    def find(self, enrollment_id: str) -> Enrollment | None:
        return self._load(primary_key(ENROLLMENT, enrollment_id))

    def list(
        self,
        academy_id: str,
        student_id: str | None = None,
        parent_id: str | None = None,
        course_id: str | None = None,
    ) -> list[Enrollment]:
        enrollments = [
            e
            for _, e in self._scan_prefix(primary_prefix(ENROLLMENT))
            if e.academy_id == academy_id
            and (student_id is None or e.student_id == student_id)
            and (parent_id is None or e.parent_id == parent_id)
            and (course_id is None or e.course_id == course_id)
        ]
        return sorted(enrollments, key=lambda e: e.created_at, reverse=True)

    def list_pending(self, academy_id: str) -> list[Enrollment]:
        return [e for e in self.list(academy_id) if e.payment_status == "pending"]

    def list_paid(self, academy_id: str) -> list[Enrollment]:
        return [e for e in self.list(academy_id) if e.payment_status == "paid"]

    def update(self, enrollment_id: str, changes: dict[str, Any]) -> Enrollment | None:
        enrollment = self.find(enrollment_id)
        if enrollment is None:
            return None
        apply_changes(enrollment, changes, protected=_PROTECTED)
        enrollment.updated_at = self._now()
        return self._save(primary_key(ENROLLMENT, enrollment_id), enrollment)

    def update_payment_status(
        self,
        enrollment_id: str,
        status: str,
        proof_url: str | None = None,
    ) -> Enrollment | None:
        """Set payment status; marking paid stamps payment_date.

        Raises:
            ValueError: If status is not a known payment status
        """
        if status not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status: {status}")
        enrollment = self.find(enrollment_id)
        if enrollment is None:
            return None

        now = self._now()
        enrollment.payment_status = status
        if proof_url is not None:
            enrollment.payment_proof_url = proof_url
        if status == "paid":
            enrollment.payment_date = now
        enrollment.updated_at = now
        logger.info(
            f"Enrollment {enrollment_id} payment status -> {status}",
            extra={"enrollment_id": enrollment_id, "academy_id": enrollment.academy_id},
        )
        return self._save(primary_key(ENROLLMENT, enrollment_id), enrollment)

    def delete(self, enrollment_id: str) -> bool:
        return self._remove(primary_key(ENROLLMENT, enrollment_id))
