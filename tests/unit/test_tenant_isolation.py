"""
Unit tests for tenant isolation of listings.

For every tenant-scoped listing, records of academy B never appear when
listing academy A.
"""

import pytest

from academy.academy_db.repositories import (
    AssessmentRepository,
    CourseRepository,
    EnrollmentRepository,
    MedalRepository,
    ProgramAttendanceRepository,
    ProgramEnrollmentRepository,
    ProgramLevelRepository,
    ProgramRepository,
)


@pytest.fixture
def two_tenants(store):
    """The same ids used in academies A and B."""
    for academy_id in ("A", "B"):
        program = ProgramRepository(store).create(academy_id, f"Program {academy_id}")
        ProgramLevelRepository(store).create(academy_id, "shared-program", "L1")
        ProgramEnrollmentRepository(store).upsert(academy_id, "shared-program", "u1")
        ProgramAttendanceRepository(store).upsert(academy_id, "shared-program", "u1", "c", "2024-05-01", True)
        AssessmentRepository(store).create(academy_id, "u1", "c", {"s": 1}, program_id="shared-program")
        CourseRepository(store).create(academy_id, {"name": f"Course {academy_id}"})
        EnrollmentRepository(store).create(academy_id, "u1", "course", "parent")
        medals = MedalRepository(store)
        medal = medals.create(academy_id, {"name": f"Medal {academy_id}"})
        medals.award(academy_id, "u1", medal.id, "c")
        assert program.academy_id == academy_id
    return store


class TestTenantIsolation:
    """Listing academy A never returns academy B records."""

    def test_listings(self, two_tenants):
        store = two_tenants
        listings = [
            ProgramRepository(store).list("A"),
            ProgramLevelRepository(store).list("A", "shared-program"),
            ProgramEnrollmentRepository(store).list_by_program("A", "shared-program"),
            ProgramEnrollmentRepository(store).list_by_user("A", "u1"),
            ProgramAttendanceRepository(store).list_by_program("A", "shared-program"),
            ProgramAttendanceRepository(store).list_by_user("A", "shared-program", "u1"),
            AssessmentRepository(store).list_by_player("A", "u1"),
            AssessmentRepository(store).list_by_player_in_program("A", "shared-program", "u1"),
            CourseRepository(store).list("A"),
            EnrollmentRepository(store).list("A"),
            MedalRepository(store).list("A"),
            MedalRepository(store).list_awards("A", "u1"),
        ]
        for records in listings:
            assert len(records) == 1
            assert all(r.academy_id == "A" for r in records)
