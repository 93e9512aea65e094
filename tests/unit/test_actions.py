"""
Unit tests for the action layer.

Tests cover:
- Role checks per action
- Cross-academy references
- Typed failures instead of exceptions
"""

import pytest

from academy.academy_db.actions import AcademyActions, action
from academy.academy_db.errors import ActionResult, ErrorCode
from academy.academy_db.repositories import AssessmentRepository, PlayerProfileRepository, ProgramRepository
from tests.factories import add_member, context


@pytest.fixture
def actions(store):
    return AcademyActions(store)


@pytest.fixture
def manager():
    return context("m1", "a1", "manager", global_role="manager")


@pytest.fixture
def coach():
    return context("c1", "a1", "coach")


@pytest.fixture
def program(actions, manager):
    return actions.create_program(manager, {"name": "Under 10"}).value


class TestActionDecorator:
    """Tests for the @action wrapper."""

    def test_value_error_is_validation(self):
        @action
        def broken():
            raise ValueError("bad input")

        result = broken()
        assert result.success is False
        assert result.code == ErrorCode.VALIDATION
        assert result.error == "bad input"

    def test_unexpected_error_is_internal(self):
        @action
        def crash():
            raise RuntimeError("boom")

        result = crash()
        assert result.code == ErrorCode.INTERNAL
        assert "boom" not in result.error

    def test_to_dict(self):
        assert ActionResult.ok({"id": 1}).to_dict() == {"success": True, "value": {"id": 1}}
        assert ActionResult.not_found("Program").to_dict() == {
            "success": False,
            "error": "Program not found",
            "code": "not_found",
        }


class TestProgramActions:
    """Tests for program and level actions."""

    def test_manager_creates_program(self, program):
        assert program["academy_id"] == "a1"
        assert program["name"] == "Under 10"

    def test_coach_cannot_create(self, actions, coach):
        result = actions.create_program(coach, {"name": "X"})
        assert result.code == ErrorCode.UNAUTHORIZED

    def test_kid_cannot_list(self, actions):
        result = actions.list_programs(context("k1", "a1", "kid", "kid"))
        assert result.code == ErrorCode.UNAUTHORIZED

    def test_name_required(self, actions, manager):
        result = actions.create_program(manager, {"name": "  "})
        assert result.code == ErrorCode.VALIDATION

    def test_cross_academy_program_rejected(self, actions, program):
        other_manager = context("m2", "a2", "manager", "manager")
        result = actions.update_program(other_manager, program["id"], {"name": "Stolen"})
        assert result.code == ErrorCode.UNAUTHORIZED
        assert actions.programs.find(program["id"]).name == "Under 10"

    def test_global_admin_acts_in_record_academy(self, actions, program):
        admin = context("root", "a2", "global_admin", "admin")
        level = actions.create_level(admin, program["id"], {"name": "L1"}).value
        assert level["academy_id"] == "a1"

    def test_missing_program(self, actions, manager):
        assert actions.delete_program(manager, "missing").code == ErrorCode.NOT_FOUND

    def test_level_lifecycle(self, actions, manager, program):
        l1 = actions.create_level(manager, program["id"], {"name": "L1"}).value
        l2 = actions.create_level(manager, program["id"], {"name": "L2"}).value

        moved = actions.move_level(manager, l2["id"], "up").value
        assert [lvl["id"] for lvl in moved] == [l2["id"], l1["id"]]

        assert actions.move_level(manager, l2["id"], "left").code == ErrorCode.VALIDATION

        assert actions.delete_level(manager, l2["id"]).success is True
        levels = actions.list_levels(manager, program["id"]).value
        assert [(lvl["id"], lvl["order"]) for lvl in levels] == [(l1["id"], 1)]

    def test_delete_program_cascades(self, store, actions, manager, program):
        actions.create_level(manager, program["id"], {"name": "L1"})
        result = actions.delete_program(manager, program["id"])
        assert result.value["program"] is True
        assert result.value["levels"] == 1
        assert ProgramRepository(store).find(program["id"]) is None


class TestPlayerActions:
    """Tests for enrollment, ledger and attendance actions."""

    @pytest.fixture
    def enrolled(self, store, actions, manager, program):
        add_member(store, "a1", "kid1", "kid")
        result = actions.enroll_player(manager, program["id"], "kid1")
        assert result.success
        return result.value

    def test_enroll_requires_membership(self, actions, manager, program):
        result = actions.enroll_player(manager, program["id"], "stranger")
        assert result.code == ErrorCode.NOT_FOUND

    def test_enroll_level_must_belong_to_program(self, store, actions, manager, program):
        add_member(store, "a1", "kid1", "kid")
        other = actions.create_program(manager, {"name": "Other"}).value
        level = actions.create_level(manager, other["id"], {"name": "L1"}).value
        result = actions.enroll_player(manager, program["id"], "kid1", level["id"])
        assert result.code == ErrorCode.VALIDATION

    def test_coach_note(self, actions, coach, program, enrolled):
        result = actions.add_coach_note(coach, program["id"], "kid1", 5, "Great effort")
        assert result.value["points_total"] == 5
        assert result.value["coach_notes"][0]["coach_user_id"] == "c1"

    def test_coach_note_for_unenrolled(self, actions, coach, program):
        assert actions.add_coach_note(coach, program["id"], "kid9", 5).code == ErrorCode.NOT_FOUND

    def test_attendance_limited_to_enrolled(self, actions, coach, program, enrolled):
        saved = actions.save_attendance(
            coach,
            program["id"],
            "2024-05-01",
            [{"user_id": "kid1", "present": True}, {"user_id": "ghost", "present": True}],
        ).value
        assert [r["user_id"] for r in saved] == ["kid1"]

        day = actions.get_attendance(coach, program["id"], "2024-05-01").value
        assert day["session_date"] == "2024-05-01"
        assert [r["user_id"] for r in day["records"]] == ["kid1"]

    def test_remove_player(self, actions, manager, program, enrolled):
        result = actions.remove_player_from_program(manager, program["id"], "kid1")
        assert result.value["enrollments"] == 1
        assert actions.list_program_players(manager, program["id"]).value == []

    def test_enrollment_creates_player_profile(self, store, enrolled):
        profile = PlayerProfileRepository(store).find("a1", "kid1")
        assert profile is not None
        assert profile.assessment_status == "new"

    def test_grant_badge_once(self, actions, coach, enrolled):
        first = actions.grant_badge(coach, "kid1", "first_goal")
        again = actions.grant_badge(coach, "kid1", "first_goal", notes="duplicate")
        assert [b["badge_id"] for b in again.value["badges"]] == ["first_goal"]
        assert again.value["badges"][0]["granted_by"] == "c1"
        assert first.value["updated_at"] == again.value["updated_at"]

    def test_badge_requires_member_and_id(self, actions, coach, enrolled):
        assert actions.grant_badge(coach, "stranger", "first_goal").code == ErrorCode.NOT_FOUND
        assert actions.grant_badge(coach, "kid1", "  ").code == ErrorCode.VALIDATION

    def test_kid_cannot_view_profiles(self, actions, enrolled):
        kid = context("kid1", "a1", "kid", global_role="kid")
        assert actions.get_player_profile(kid, "kid1").code == ErrorCode.UNAUTHORIZED


class TestAssessmentActions:
    """Tests for assessment actions."""

    @pytest.fixture
    def session(self, store, actions, coach):
        add_member(store, "a1", "kid1", "kid")
        return actions.create_assessment(coach, "kid1", {"speed": 70}, "2024-05-01").value

    def test_locked_update_is_typed_failure(self, actions, coach, session):
        result = actions.update_assessment(coach, session["id"], {"speed": 90})
        assert result.code == ErrorCode.LOCKED

    def test_notes_while_locked(self, actions, coach, session):
        result = actions.update_assessment_notes(coach, session["id"], notes="Windy day")
        assert result.value["notes"] == "Windy day"

    def test_only_managers_unlock(self, actions, coach, manager, session):
        assert actions.unlock_assessment(coach, session["id"]).code == ErrorCode.UNAUTHORIZED
        assert actions.unlock_assessment(manager, session["id"]).value["is_locked"] is False
        updated = actions.update_assessment(coach, session["id"], {"speed": 90})
        assert updated.value["na_score"] == 90

    def test_player_outside_academy(self, actions, coach):
        assert actions.create_assessment(coach, "stranger", {"speed": 1}).code == ErrorCode.NOT_FOUND

    def test_other_academy_session(self, store, actions, session):
        outsider = context("c2", "a2", "coach")
        assert actions.update_assessment_notes(outsider, session["id"], notes="x").code == ErrorCode.UNAUTHORIZED
        assert AssessmentRepository(store).find(session["id"]).notes is None
