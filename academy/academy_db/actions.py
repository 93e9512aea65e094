"""
Academy-scoped operations returning ActionResult.

This is the boundary the HTTP glue and tools call. Each action:
- checks the caller's academy role against the permission table
- checks that every referenced record (program, level, player) belongs to
  the context academy; global admins may act on any academy's records,
  which are then scoped to the record's own academy
- converts unexpected exceptions into an INTERNAL failure after logging

Invariants:
    - Authorization, validation and not-found outcomes never raise
    - Attendance is only read and written for players enrolled in the program

How to change safely:
    - New actions must use @action so failures keep the ActionResult shape
    - Resolve the owning academy with _program() before touching dependents
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .cascade import ProgramCascade
from .config import DEFAULT_ACADEMY_ID
from .errors import ActionResult, AssessmentLockedError, ErrorCode
from .ledger import normalize_session_date
from .models import Program, ProgramLevel
from .repositories import (
    AssessmentRepository,
    MembershipRepository,
    PlayerProfileRepository,
    ProgramAttendanceRepository,
    ProgramEnrollmentRepository,
    ProgramLevelRepository,
    ProgramRepository,
)
from .roles import has_permission
from .storage.base import KeyValueStore
from .tenancy.context import AcademyContext
from .tenancy.guards import require_user_in_academy

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., ActionResult[Any]])


def action(func: F) -> F:
    """Wrap an action so unexpected exceptions become typed failures."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> ActionResult[Any]:
        try:
            return func(*args, **kwargs)
        except AssessmentLockedError as e:
            return ActionResult.fail(e.message, ErrorCode.LOCKED)
        except ValueError as e:
            return ActionResult.fail(str(e), ErrorCode.VALIDATION)
        except Exception as e:
            logger.error(f"Action {func.__name__} failed: {e}", exc_info=True)
            return ActionResult.fail(f"Failed to {func.__name__.replace('_', ' ')}", ErrorCode.INTERNAL)

    return wrapper  # type: ignore[return-value]


def _can_manage(ctx: AcademyContext) -> bool:
    return has_permission(ctx.academy_role, "can_manage_programs")


def _can_coach(ctx: AcademyContext) -> bool:
    return _can_manage(ctx) or has_permission(ctx.academy_role, "can_coach_programs")


class AcademyActions:
    """Program, level, attendance, ledger and assessment actions."""

    def __init__(self, store: KeyValueStore, default_academy_id: str = DEFAULT_ACADEMY_ID) -> None:
        self.programs = ProgramRepository(store, default_academy_id)
        self.levels = ProgramLevelRepository(store, default_academy_id)
        self.enrollments = ProgramEnrollmentRepository(store, default_academy_id)
        self.attendance = ProgramAttendanceRepository(store, default_academy_id)
        self.assessments = AssessmentRepository(store, default_academy_id)
        self.memberships = MembershipRepository(store, default_academy_id)
        self.profiles = PlayerProfileRepository(store, default_academy_id)
        self.cascade = ProgramCascade(store, default_academy_id)

    # Ownership checks

    def _program(self, ctx: AcademyContext, program_id: str) -> ActionResult[Program]:
        program = self.programs.find(program_id)
        if program is None:
            return ActionResult.not_found("Program")
        if program.academy_id != ctx.academy_id and not ctx.is_global_admin:
            logger.warning(
                "Rejected cross-academy program reference",
                extra={"academy_id": ctx.academy_id, "program_id": program_id, "user_id": ctx.user.id},
            )
            return ActionResult.unauthorized()
        return ActionResult.ok(program)

    def _level(self, ctx: AcademyContext, level_id: str) -> ActionResult[ProgramLevel]:
        level = self.levels.find(level_id)
        if level is None:
            return ActionResult.not_found("Level")
        if level.academy_id != ctx.academy_id and not ctx.is_global_admin:
            return ActionResult.unauthorized()
        return ActionResult.ok(level)

    # Programs

    @action
    def list_programs(self, ctx: AcademyContext, active_only: bool = False) -> ActionResult[list[dict]]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        return ActionResult.ok([p.to_dict() for p in self.programs.list(ctx.academy_id, active_only)])

    @action
    def create_program(self, ctx: AcademyContext, fields: dict[str, Any]) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        name = (fields.get("name") or "").strip()
        if not name:
            return ActionResult.fail("Program name is required", ErrorCode.VALIDATION)
        program = self.programs.create(
            ctx.academy_id,
            name=name,
            name_ar=fields.get("name_ar") or "",
            description=fields.get("description"),
            description_ar=fields.get("description_ar"),
            image=fields.get("image"),
            is_active=fields.get("is_active", True),
        )
        return ActionResult.ok(program.to_dict())

    @action
    def update_program(self, ctx: AcademyContext, program_id: str, changes: dict[str, Any]) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        program = self.programs.update(program_id, changes)
        if program is None:
            return ActionResult.not_found("Program")
        return ActionResult.ok(program.to_dict())

    @action
    def delete_program(self, ctx: AcademyContext, program_id: str) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        report = self.cascade.delete_program(owned.value.academy_id, program_id)
        return ActionResult.ok(report.to_dict())

    # Levels

    @action
    def list_levels(self, ctx: AcademyContext, program_id: str) -> ActionResult[list[dict]]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        levels = self.levels.list(owned.value.academy_id, program_id)
        return ActionResult.ok([lvl.to_dict() for lvl in levels])

    @action
    def create_level(self, ctx: AcademyContext, program_id: str, fields: dict[str, Any]) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        name = (fields.get("name") or "").strip()
        if not name:
            return ActionResult.fail("Level name is required", ErrorCode.VALIDATION)
        level = self.levels.create(
            owned.value.academy_id,
            program_id,
            name=name,
            name_ar=fields.get("name_ar") or "",
            description=fields.get("description"),
            description_ar=fields.get("description_ar"),
            image=fields.get("image"),
            pass_rules=fields.get("pass_rules"),
        )
        return ActionResult.ok(level.to_dict())

    @action
    def update_level(self, ctx: AcademyContext, level_id: str, changes: dict[str, Any]) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._level(ctx, level_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        level = self.levels.update(level_id, changes)
        if level is None:
            return ActionResult.not_found("Level")
        return ActionResult.ok(level.to_dict())

    @action
    def delete_level(self, ctx: AcademyContext, level_id: str) -> ActionResult[None]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._level(ctx, level_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        if not self.levels.delete(level_id):
            return ActionResult.not_found("Level")
        return ActionResult.ok()

    @action
    def move_level(self, ctx: AcademyContext, level_id: str, direction: str) -> ActionResult[list[dict]]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._level(ctx, level_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        levels = self.levels.move(level_id, direction)
        if levels is None:
            return ActionResult.not_found("Level")
        return ActionResult.ok([lvl.to_dict() for lvl in levels])

    # Enrollment and ledger

    @action
    def enroll_player(
        self,
        ctx: AcademyContext,
        program_id: str,
        user_id: str,
        current_level_id: str | None = None,
    ) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        academy_id = owned.value.academy_id
        member = require_user_in_academy(self.memberships, academy_id, user_id)
        if not member.success:
            return member  # type: ignore[return-value]
        if current_level_id is not None:
            level = self.levels.find(current_level_id)
            if level is None or level.program_id != program_id:
                return ActionResult.fail("Level does not belong to program", ErrorCode.VALIDATION)
        enrollment = self.enrollments.upsert(academy_id, program_id, user_id, current_level_id)
        self.profiles.ensure(academy_id, user_id)
        return ActionResult.ok(enrollment.to_dict())

    @action
    def list_program_players(self, ctx: AcademyContext, program_id: str) -> ActionResult[list[dict]]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        enrollments = self.enrollments.list_by_program(owned.value.academy_id, program_id)
        return ActionResult.ok([e.to_dict() for e in enrollments])

    @action
    def add_coach_note(
        self,
        ctx: AcademyContext,
        program_id: str,
        user_id: str,
        points_delta: Any = None,
        comment: str | None = None,
    ) -> ActionResult[dict]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        enrollment = self.enrollments.append_coach_note(
            owned.value.academy_id,
            program_id,
            user_id,
            coach_user_id=ctx.user.id,
            points_delta=points_delta,
            comment=comment,
        )
        if enrollment is None:
            return ActionResult.not_found("Enrollment")
        return ActionResult.ok(enrollment.to_dict())

    @action
    def remove_player_from_program(self, ctx: AcademyContext, program_id: str, user_id: str) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        report = self.cascade.remove_player_from_program(owned.value.academy_id, program_id, user_id)
        return ActionResult.ok(report.to_dict())

    # Player profiles

    @action
    def get_player_profile(self, ctx: AcademyContext, user_id: str) -> ActionResult[dict]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        member = require_user_in_academy(self.memberships, ctx.academy_id, user_id)
        if not member.success:
            return member  # type: ignore[return-value]
        return ActionResult.ok(self.profiles.ensure(ctx.academy_id, user_id).to_dict())

    @action
    def grant_badge(
        self,
        ctx: AcademyContext,
        user_id: str,
        badge_id: str,
        notes: str | None = None,
    ) -> ActionResult[dict]:
        """Grant a badge once; repeated grants return the unchanged profile."""
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        if not badge_id.strip():
            return ActionResult.fail("Badge id is required", ErrorCode.VALIDATION)
        member = require_user_in_academy(self.memberships, ctx.academy_id, user_id)
        if not member.success:
            return member  # type: ignore[return-value]
        profile = self.profiles.grant_badge(ctx.academy_id, user_id, badge_id.strip(), ctx.user.id, notes)
        return ActionResult.ok(profile.to_dict())

    # Attendance

    @action
    def get_attendance(self, ctx: AcademyContext, program_id: str, session_date: str | None = None) -> ActionResult[dict]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        academy_id = owned.value.academy_id
        day = normalize_session_date(session_date)
        enrolled = {e.user_id for e in self.enrollments.list_by_program(academy_id, program_id)}
        records = [
            r.to_dict()
            for r in self.attendance.get_for_date(academy_id, program_id, day)
            if r.user_id in enrolled
        ]
        return ActionResult.ok({"session_date": day, "records": records})

    @action
    def save_attendance(
        self,
        ctx: AcademyContext,
        program_id: str,
        session_date: str | None,
        entries: list[dict[str, Any]],
    ) -> ActionResult[list[dict]]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        owned = self._program(ctx, program_id)
        if not owned.success:
            return owned  # type: ignore[return-value]
        academy_id = owned.value.academy_id
        enrolled = {e.user_id for e in self.enrollments.list_by_program(academy_id, program_id)}
        allowed = [e for e in entries if e.get("user_id") in enrolled]
        if len(allowed) < len(entries):
            logger.info(
                f"Skipped {len(entries) - len(allowed)} attendance entries for players not enrolled",
                extra={"academy_id": academy_id, "program_id": program_id},
            )
        records = self.attendance.save_batch(
            academy_id, program_id, ctx.user.id, normalize_session_date(session_date), allowed
        )
        return ActionResult.ok([r.to_dict() for r in records])

    # Assessments

    @action
    def create_assessment(
        self,
        ctx: AcademyContext,
        player_id: str,
        tests: dict[str, Any],
        session_date: str | None = None,
        program_id: str | None = None,
        notes: str | None = None,
    ) -> ActionResult[dict]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        academy_id = ctx.academy_id
        if program_id is not None:
            owned = self._program(ctx, program_id)
            if not owned.success:
                return owned  # type: ignore[return-value]
            academy_id = owned.value.academy_id
        member = require_user_in_academy(self.memberships, academy_id, player_id)
        if not member.success:
            return member  # type: ignore[return-value]
        session = self.assessments.create(
            academy_id,
            player_id,
            entered_by=ctx.user.id,
            tests=tests,
            session_date=session_date,
            program_id=program_id,
            notes=notes,
        )
        return ActionResult.ok(session.to_dict())

    def _session_in_scope(self, ctx: AcademyContext, session_id: str) -> ActionResult[None]:
        session = self.assessments.find(session_id)
        if session is None:
            return ActionResult.not_found("Assessment")
        if session.academy_id != ctx.academy_id and not ctx.is_global_admin:
            return ActionResult.unauthorized()
        return ActionResult.ok()

    @action
    def update_assessment(self, ctx: AcademyContext, session_id: str, tests: dict[str, Any]) -> ActionResult[dict]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        scoped = self._session_in_scope(ctx, session_id)
        if not scoped.success:
            return scoped  # type: ignore[return-value]
        session = self.assessments.update(session_id, tests=tests)
        if session is None:
            return ActionResult.not_found("Assessment")
        return ActionResult.ok(session.to_dict())

    @action
    def update_assessment_notes(
        self,
        ctx: AcademyContext,
        session_id: str,
        notes: str | None = None,
        test_notes: dict[str, str] | None = None,
    ) -> ActionResult[dict]:
        if not _can_coach(ctx):
            return ActionResult.unauthorized()
        scoped = self._session_in_scope(ctx, session_id)
        if not scoped.success:
            return scoped  # type: ignore[return-value]
        session = self.assessments.update_notes(session_id, notes=notes, test_notes=test_notes)
        if session is None:
            return ActionResult.not_found("Assessment")
        return ActionResult.ok(session.to_dict())

    @action
    def unlock_assessment(self, ctx: AcademyContext, session_id: str) -> ActionResult[dict]:
        if not _can_manage(ctx):
            return ActionResult.unauthorized()
        scoped = self._session_in_scope(ctx, session_id)
        if not scoped.success:
            return scoped  # type: ignore[return-value]
        session = self.assessments.unlock(session_id)
        if session is None:
            return ActionResult.not_found("Assessment")
        return ActionResult.ok(session.to_dict())
