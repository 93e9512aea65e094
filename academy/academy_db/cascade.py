"""
Ordered multi-key cleanup for programs and program players.

The store has no multi-key transactions, so cascades run as a fixed
sequence of idempotent steps. Dependents are removed before the record
they hang off; the program primary goes last. A cascade interrupted
part-way can simply be run again.

Invariants:
    - delete_program: levels, attendance, assessments, enrollments, program
    - remove_player_from_program: attendance, assessments, enrollment
    - Every step tolerates records that are already gone
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from .config import DEFAULT_ACADEMY_ID
from .repositories import (
    AssessmentRepository,
    ProgramAttendanceRepository,
    ProgramEnrollmentRepository,
    ProgramLevelRepository,
    ProgramRepository,
)
from .storage.base import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class CascadeReport:
    """Counts of records removed by a cascade."""

    levels: int = 0
    attendance: int = 0
    assessments: int = 0
    enrollments: int = 0
    program: bool = False

    def to_dict(self) -> dict[str, int | bool]:
        return asdict(self)


class ProgramCascade:
    def __init__(self, store: KeyValueStore, default_academy_id: str = DEFAULT_ACADEMY_ID) -> None:
        self.programs = ProgramRepository(store, default_academy_id)
        self.levels = ProgramLevelRepository(store, default_academy_id)
        self.attendance = ProgramAttendanceRepository(store, default_academy_id)
        self.assessments = AssessmentRepository(store, default_academy_id)
        self.enrollments = ProgramEnrollmentRepository(store, default_academy_id)

    def delete_program(self, academy_id: str, program_id: str) -> CascadeReport:
        """Delete a program and everything that references it."""
        report = CascadeReport()
        report.levels = self.levels.delete_for_program(academy_id, program_id)
        report.attendance = self.attendance.delete_for_program(academy_id, program_id)
        report.assessments = self.assessments.delete_for_program(academy_id, program_id)
        report.enrollments = self.enrollments.delete_for_program(academy_id, program_id)
        report.program = self.programs.delete(program_id)
        logger.info(
            f"Deleted program {program_id}",
            extra={"academy_id": academy_id, "program_id": program_id, **report.to_dict()},
        )
        return report

    def remove_player_from_program(self, academy_id: str, program_id: str, user_id: str) -> CascadeReport:
        """Remove a player's enrollment and their program-scoped records."""
        report = CascadeReport()
        report.attendance = self.attendance.delete_for_user_in_program(academy_id, program_id, user_id)
        report.assessments = self.assessments.delete_for_player_in_program(academy_id, program_id, user_id)
        report.enrollments = int(self.enrollments.remove(academy_id, program_id, user_id))
        logger.info(
            f"Removed user {user_id} from program {program_id}",
            extra={"academy_id": academy_id, "program_id": program_id, "user_id": user_id, **report.to_dict()},
        )
        return report
