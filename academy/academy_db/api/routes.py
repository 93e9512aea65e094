"""
API routes for the academy store.

Every tenant-scoped route depends on get_academy_context, which resolves
the academy from the signed selection cookie and refreshes the cookie when
resolution picked a different academy.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from ..actions import AcademyActions
from ..errors import ActionResult, ErrorCode
from ..models import User
from ..tenancy import AcademyContext, AcademyContextResolver, cookie_kwargs, sign_academy_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Academy"])

_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.VALIDATION: 400,
    ErrorCode.LOCKED: 409,
    ErrorCode.INTERNAL: 500,
}


# --- Request Models ---


class AcademySelectRequest(BaseModel):
    """Request to switch the selected academy."""

    academy_id: str = Field(..., description="Academy to operate in")


class ProgramCreateRequest(BaseModel):
    name: str = Field(..., description="Program name")
    name_ar: str = ""
    description: str | None = None
    description_ar: str | None = None
    image: str | None = None
    is_active: bool = True


class ProgramUpdateRequest(BaseModel):
    name: str | None = None
    name_ar: str | None = None
    description: str | None = None
    description_ar: str | None = None
    image: str | None = None
    is_active: bool | None = None


class LevelCreateRequest(BaseModel):
    name: str = Field(..., description="Level name")
    name_ar: str = ""
    description: str | None = None
    description_ar: str | None = None
    image: str | None = None
    pass_rules: dict[str, Any] | None = None


class LevelUpdateRequest(BaseModel):
    name: str | None = None
    name_ar: str | None = None
    description: str | None = None
    description_ar: str | None = None
    image: str | None = None
    pass_rules: dict[str, Any] | None = None


class LevelMoveRequest(BaseModel):
    direction: str = Field(..., pattern="^(up|down)$")


class EnrollRequest(BaseModel):
    user_id: str
    current_level_id: str | None = None


class AttendanceEntry(BaseModel):
    user_id: str
    present: bool
    notes: str | None = None


class AttendanceSaveRequest(BaseModel):
    session_date: str | None = None
    entries: list[AttendanceEntry] = Field(default_factory=list)


class BadgeGrantRequest(BaseModel):
    badge_id: str = Field(..., min_length=1)
    notes: str | None = None


class CoachNoteRequest(BaseModel):
    """Coach note; points_delta may be omitted."""

    points_delta: float | None = Field(None, allow_inf_nan=False)
    comment: str | None = None


# --- Dependencies ---


def get_actions(request: Request) -> AcademyActions:
    return request.app.state.actions


def get_resolver(request: Request) -> AcademyContextResolver:
    return request.app.state.resolver


def get_current_user(
    request: Request,
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> User:
    """Look up the user an upstream auth layer identified."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = request.app.state.users.find(x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def _persist_selection(request: Request, response: Response, academy_id: str) -> None:
    response.set_cookie(**cookie_kwargs(request.app.state.config.cookie, academy_id))


def get_academy_context(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    resolver: AcademyContextResolver = Depends(get_resolver),
) -> AcademyContext:
    """Resolve the academy for this request (redirects when forbidden)."""
    cookie_name = request.app.state.config.cookie.name
    ctx = resolver.resolve(user, request.cookies.get(cookie_name))
    if ctx.set_cookie:
        _persist_selection(request, response, ctx.set_cookie)
    return ctx


def _respond(result: ActionResult[Any], response: Response) -> dict[str, Any]:
    if not result.success and result.code is not None:
        response.status_code = _STATUS[result.code]
    return result.to_dict()


# --- Context Routes ---


@router.get("/context")
def get_context(ctx: AcademyContext = Depends(get_academy_context)):
    """Current academy scope of the caller."""
    return {
        "user": ctx.user.public_dict(),
        "academy_id": ctx.academy_id,
        "academy_role": ctx.academy_role,
    }


@router.post("/academy/select")
def select_academy(
    body: AcademySelectRequest,
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    resolver: AcademyContextResolver = Depends(get_resolver),
):
    """Switch academies. The resolved academy is always persisted."""
    secret = request.app.state.config.cookie.secret
    ctx = resolver.resolve(user, sign_academy_id(body.academy_id, secret))
    _persist_selection(request, response, ctx.academy_id)
    return {"academy_id": ctx.academy_id, "academy_role": ctx.academy_role}


# --- Program Routes ---


@router.get("/programs")
def list_programs(
    response: Response,
    active_only: bool = Query(False),
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.list_programs(ctx, active_only), response)


@router.post("/programs", status_code=201)
def create_program(
    body: ProgramCreateRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.create_program(ctx, body.model_dump()), response)


@router.patch("/programs/{program_id}")
def update_program(
    program_id: str,
    body: ProgramUpdateRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    changes = body.model_dump(exclude_none=True)
    return _respond(actions.update_program(ctx, program_id, changes), response)


@router.delete("/programs/{program_id}")
def delete_program(
    program_id: str,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    """Delete a program with its levels, attendance, assessments and enrollments."""
    return _respond(actions.delete_program(ctx, program_id), response)


# --- Level Routes ---


@router.get("/programs/{program_id}/levels")
def list_levels(
    program_id: str,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.list_levels(ctx, program_id), response)


@router.post("/programs/{program_id}/levels", status_code=201)
def create_level(
    program_id: str,
    body: LevelCreateRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.create_level(ctx, program_id, body.model_dump()), response)


@router.patch("/levels/{level_id}")
def update_level(
    level_id: str,
    body: LevelUpdateRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    changes = body.model_dump(exclude_none=True)
    return _respond(actions.update_level(ctx, level_id, changes), response)


@router.delete("/levels/{level_id}")
def delete_level(
    level_id: str,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.delete_level(ctx, level_id), response)


@router.post("/levels/{level_id}/move")
def move_level(
    level_id: str,
    body: LevelMoveRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.move_level(ctx, level_id, body.direction), response)


# --- Player Routes ---


@router.get("/programs/{program_id}/players")
def list_players(
    program_id: str,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.list_program_players(ctx, program_id), response)


@router.post("/programs/{program_id}/players", status_code=201)
def enroll_player(
    program_id: str,
    body: EnrollRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    result = actions.enroll_player(ctx, program_id, body.user_id, body.current_level_id)
    return _respond(result, response)


@router.delete("/programs/{program_id}/players/{user_id}")
def remove_player(
    program_id: str,
    user_id: str,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    """Remove a player with their program attendance and assessments."""
    return _respond(actions.remove_player_from_program(ctx, program_id, user_id), response)


@router.post("/programs/{program_id}/players/{user_id}/notes", status_code=201)
def add_coach_note(
    program_id: str,
    user_id: str,
    body: CoachNoteRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    result = actions.add_coach_note(ctx, program_id, user_id, body.points_delta, body.comment)
    return _respond(result, response)


# --- Player Profile Routes ---


@router.get("/players/{user_id}/profile")
def get_player_profile(
    user_id: str,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    """Achievement points and badges of a player in the current academy."""
    return _respond(actions.get_player_profile(ctx, user_id), response)


@router.post("/players/{user_id}/badges", status_code=201)
def grant_badge(
    user_id: str,
    body: BadgeGrantRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.grant_badge(ctx, user_id, body.badge_id, body.notes), response)


# --- Attendance Routes ---


@router.get("/programs/{program_id}/attendance")
def get_attendance(
    program_id: str,
    response: Response,
    session_date: str | None = Query(None, alias="date"),
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    return _respond(actions.get_attendance(ctx, program_id, session_date), response)


@router.put("/programs/{program_id}/attendance")
def save_attendance(
    program_id: str,
    body: AttendanceSaveRequest,
    response: Response,
    ctx: AcademyContext = Depends(get_academy_context),
    actions: AcademyActions = Depends(get_actions),
):
    entries = [e.model_dump() for e in body.entries]
    return _respond(actions.save_attendance(ctx, program_id, body.session_date, entries), response)
