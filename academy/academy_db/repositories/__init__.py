"""
Repositories over the academy key/value store.

One repository per entity; each takes the store handle in its constructor
and never opens or closes it.
"""

from .academies import AcademyRepository, MembershipRepository
from .assessments import AssessmentRepository
from .attendance import ProgramAttendanceRepository
from .base import BaseRepository
from .courses import CourseRepository, EnrollmentRepository
from .medals import MedalRepository
from .player_profiles import PlayerProfileRepository
from .program_enrollments import ProgramEnrollmentRepository
from .programs import ProgramLevelRepository, ProgramRepository
from .users import UserRepository, check_password, hash_password

__all__ = [
    "BaseRepository",
    "AcademyRepository",
    "MembershipRepository",
    "UserRepository",
    "CourseRepository",
    "EnrollmentRepository",
    "ProgramRepository",
    "ProgramLevelRepository",
    "ProgramEnrollmentRepository",
    "ProgramAttendanceRepository",
    "AssessmentRepository",
    "MedalRepository",
    "PlayerProfileRepository",
    "hash_password",
    "check_password",
]
