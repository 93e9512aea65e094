"""
Unit tests for cascading deletes.

Tests cover:
- Program deletion leaves no dependent keys
- Player removal scoped to one program
- Re-running a cascade after a partial failure
"""

import pytest

from academy.academy_db.cascade import ProgramCascade
from academy.academy_db.repositories import (
    AssessmentRepository,
    ProgramAttendanceRepository,
    ProgramEnrollmentRepository,
    ProgramLevelRepository,
    ProgramRepository,
)


def keys_mentioning(store, program_id):
    return [k for k in store.keys() if program_id in k.split(":")]


@pytest.fixture
def seeded(store):
    """Program P with levels, two enrolled players, attendance and assessments."""
    program = ProgramRepository(store).create("a1", "P")
    other = ProgramRepository(store).create("a1", "Other")
    levels = ProgramLevelRepository(store)
    levels.create("a1", program.id, "L1")
    levels.create("a1", program.id, "L2")
    levels.create("a1", other.id, "Keep")

    enrollments = ProgramEnrollmentRepository(store)
    attendance = ProgramAttendanceRepository(store)
    assessments = AssessmentRepository(store)
    for user_id in ("u1", "u2"):
        enrollments.upsert("a1", program.id, user_id)
        enrollments.upsert("a1", other.id, user_id)
        attendance.upsert("a1", program.id, user_id, "coach", "2024-05-01", present=True)
        attendance.upsert("a1", other.id, user_id, "coach", "2024-05-01", present=True)
        assessments.create("a1", user_id, "coach", {"s": 50}, program_id=program.id)
        assessments.create("a1", user_id, "coach", {"s": 60}, program_id=other.id)
    return program, other


class TestDeleteProgram:
    """Tests for ProgramCascade.delete_program."""

    def test_no_dependents_remain(self, store, seeded):
        program, other = seeded
        report = ProgramCascade(store).delete_program("a1", program.id)

        assert report.to_dict() == {
            "levels": 2,
            "attendance": 2,
            "assessments": 2,
            "enrollments": 2,
            "program": True,
        }
        assert ProgramLevelRepository(store).list("a1", program.id) == []
        assert ProgramAttendanceRepository(store).list_by_program("a1", program.id) == []
        assert ProgramEnrollmentRepository(store).list_by_program("a1", program.id) == []
        assert ProgramRepository(store).find(program.id) is None
        assert keys_mentioning(store, program.id) == []

        # Assessment primaries are keyed by session id only.
        remaining = [
            s
            for u in ("u1", "u2")
            for s in AssessmentRepository(store).list_by_player("a1", u)
        ]
        assert {s.program_id for s in remaining} == {other.id}

    def test_other_program_untouched(self, store, seeded):
        program, other = seeded
        ProgramCascade(store).delete_program("a1", program.id)

        assert len(ProgramLevelRepository(store).list("a1", other.id)) == 1
        assert len(ProgramEnrollmentRepository(store).list_by_program("a1", other.id)) == 2
        assert len(ProgramAttendanceRepository(store).list_by_program("a1", other.id)) == 2

    def test_rerun_after_partial_failure(self, store, seeded):
        """A cascade that stopped after the levels step completes when re-run."""
        program, _ = seeded
        cascade = ProgramCascade(store)
        cascade.levels.delete_for_program("a1", program.id)

        report = cascade.delete_program("a1", program.id)
        assert report.levels == 0
        assert report.program is True
        assert keys_mentioning(store, program.id) == []

        again = cascade.delete_program("a1", program.id)
        assert again.to_dict() == {
            "levels": 0,
            "attendance": 0,
            "assessments": 0,
            "enrollments": 0,
            "program": False,
        }


class TestRemovePlayer:
    """Tests for ProgramCascade.remove_player_from_program."""

    def test_removes_player_records(self, store, seeded):
        program, other = seeded
        report = ProgramCascade(store).remove_player_from_program("a1", program.id, "u1")

        assert report.attendance == 1
        assert report.assessments == 1
        assert report.enrollments == 1
        assert ProgramEnrollmentRepository(store).find("a1", program.id, "u1") is None
        assert ProgramAttendanceRepository(store).list_by_user("a1", program.id, "u1") == []
        assert AssessmentRepository(store).list_by_player_in_program("a1", program.id, "u1") == []

    def test_other_players_and_programs_kept(self, store, seeded):
        program, other = seeded
        ProgramCascade(store).remove_player_from_program("a1", program.id, "u1")

        assert ProgramEnrollmentRepository(store).find("a1", program.id, "u2") is not None
        assert ProgramEnrollmentRepository(store).find("a1", other.id, "u1") is not None
        assert len(AssessmentRepository(store).list_by_player_in_program("a1", other.id, "u1")) == 1
        assert [k for k in store.keys() if k.endswith(":u1") and program.id in k] == []
