"""
Typed records stored in the academy key/value store.

The store enforces no schema, so every read goes through decode(), which
fills defaults for fields an older record may lack and reports whether
anything had to be filled. Repositories persist the normalized record when
decode() reports a change (migrate-on-read), so the cost is paid once.

Invariants:
    - decode() of an already-normalized record reports changed=False
    - Every tenant-scoped record has a non-null academy_id after decode()
    - Unknown stored keys are ignored, never an error
    - ProgramEnrollment: points_total == dropped_points + sum(note deltas)
    - PlayerProfile: points_total == dropped_points + sum(event points)

How to change safely:
    - New fields need a dataclass default; add them to read_defaults()
      only when old records must be rewritten to carry them
    - Never rename a stored field without a decode() path for the old name
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, TypeVar

from .config import DEFAULT_ACADEMY_ID
from .storage.base import generate_id

R = TypeVar("R", bound="Record")

PROGRAM_ENROLLMENT_STATUSES = ("active", "paused", "completed")
PAYMENT_STATUSES = ("pending", "paid", "rejected")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string (sortable)."""
    return datetime.now(timezone.utc).isoformat()


def finite_number(value: Any) -> float | int | None:
    """Return value if it is a finite real number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


class Record:
    """Mixin providing the storage codec for record dataclasses."""

    @classmethod
    def read_defaults(cls, data: dict[str, Any], default_academy_id: str) -> dict[str, Any]:
        """Fields that must be present after decoding, with their fill values.

        A value may be a callable taking the raw record.
        """
        return {}

    @classmethod
    def decode(
        cls: type[R],
        data: dict[str, Any],
        default_academy_id: str = DEFAULT_ACADEMY_ID,
    ) -> tuple[R, bool]:
        """Decode a stored record, filling defaults.

        Returns:
            Tuple of (record, changed) where changed means the stored shape
            was incomplete and should be rewritten.
        """
        normalized = dict(data)
        changed = False
        for name, default in cls.read_defaults(data, default_academy_id).items():
            if normalized.get(name) is None:
                normalized[name] = default(data) if callable(default) else default
                changed = True

        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        record = cls(**{k: v for k, v in normalized.items() if k in known})
        return record, changed

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


@dataclass
class Academy(Record):
    """A tenant."""

    id: str
    name: str = ""
    name_ar: str = ""
    is_active: bool = True
    created_by: str = "system"
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"is_active": True}


@dataclass
class Membership(Record):
    """A (academy, user) row granting an academy-local role."""

    academy_id: str
    user_id: str
    role: str = "coach"
    created_by: str = "system"
    created_at: str = ""
    updated_at: str = ""


@dataclass
class User(Record):
    """A global account. role is the global role, not an academy role."""

    id: str
    email: str = ""
    username: str = ""
    full_name: str = ""
    role: str = "kid"
    password_hash: str = ""
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"is_active": True}

    def public_dict(self) -> dict[str, Any]:
        data = self.to_dict()
        data.pop("password_hash", None)
        return data


@dataclass
class Course(Record):
    id: str
    academy_id: str = ""
    name: str = ""
    name_ar: str = ""
    description: str | None = None
    description_ar: str | None = None
    category: str | None = None
    price: float = 0
    currency: str = "USD"
    duration: int = 0
    start_date: str | None = None
    end_date: str | None = None
    course_image: str | None = None
    coach_id: str | None = None
    total_sessions: int | None = None
    session_days: list[str] | None = None
    session_start_time: str | None = None
    session_end_time: str | None = None
    max_students: int | None = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {
            "academy_id": default_academy_id,
            "currency": "USD",
            "is_active": True,
        }


@dataclass
class Enrollment(Record):
    """A course enrollment and its payment status."""

    id: str
    academy_id: str = ""
    student_id: str = ""
    course_id: str = ""
    parent_id: str = ""
    payment_status: str = "pending"
    enrollment_date: str = ""
    payment_proof_url: str | None = None
    payment_date: str | None = None
    notes: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"academy_id": default_academy_id, "payment_status": "pending"}


@dataclass
class Program(Record):
    id: str
    academy_id: str = ""
    name: str = ""
    name_ar: str = ""
    description: str | None = None
    description_ar: str | None = None
    image: str | None = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"academy_id": default_academy_id, "is_active": True}


@dataclass
class ProgramLevel(Record):
    """A level within a program. order is dense 1..N per program."""

    id: str
    academy_id: str = ""
    program_id: str = ""
    order: int = 0
    name: str = ""
    name_ar: str = ""
    description: str | None = None
    description_ar: str | None = None
    image: str | None = None
    pass_rules: dict[str, float] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"academy_id": default_academy_id, "pass_rules": dict}


PASS_RULE_KEYS = ("min_days_in_level", "min_attendance_rate_percent", "min_na_improvement_percent")


def sanitize_pass_rules(rules: dict[str, Any] | None) -> dict[str, float]:
    """Keep known pass rules that are finite, non-negative numbers."""
    clean: dict[str, float] = {}
    for key in PASS_RULE_KEYS:
        value = finite_number((rules or {}).get(key))
        if value is not None and value >= 0:
            clean[key] = value
    return clean


@dataclass
class CoachNote:
    """One progression ledger entry."""

    id: str
    coach_user_id: str
    created_at: str
    points_delta: float | int | None = None
    comment: str | None = None

    @property
    def applied_points(self) -> float | int:
        """Points this note contributed to the running total."""
        value = finite_number(self.points_delta)
        return value if value is not None else 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CoachNote:
        return cls(
            id=data.get("id", ""),
            coach_user_id=data.get("coach_user_id", ""),
            created_at=data.get("created_at", ""),
            points_delta=data.get("points_delta"),
            comment=data.get("comment"),
        )


def _legacy_notes(data: dict[str, Any]) -> list[CoachNote]:
    return [CoachNote.from_dict(n) for n in data.get("coach_notes") or []]


def _legacy_points_total(data: dict[str, Any]) -> float | int:
    dropped = finite_number(data.get("dropped_points")) or 0
    return dropped + sum(n.applied_points for n in _legacy_notes(data))


def _legacy_dropped_points(data: dict[str, Any]) -> float | int:
    # Totals written before dropped_points existed already include the
    # deltas of notes that fell off the capped history.
    total = finite_number(data.get("points_total"))
    if total is None:
        return 0
    return total - sum(n.applied_points for n in _legacy_notes(data))


@dataclass
class ProgramEnrollment(Record):
    """A player's enrollment in a program, carrying the progression ledger."""

    id: str
    academy_id: str = ""
    program_id: str = ""
    user_id: str = ""
    status: str = "active"
    joined_at: str = ""
    current_level_id: str | None = None
    points_total: float | int = 0
    dropped_points: float | int = 0
    coach_notes: list[CoachNote] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.coach_notes = [
            n if isinstance(n, CoachNote) else CoachNote.from_dict(n) for n in self.coach_notes
        ]

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {
            "academy_id": default_academy_id,
            "status": "active",
            "coach_notes": list,
            "dropped_points": _legacy_dropped_points,
            "points_total": _legacy_points_total,
        }

    def ledger_drift(self) -> float | int:
        """Stored total minus what the ledger accounts for. 0 when consistent."""
        return self.points_total - (
            self.dropped_points + sum(n.applied_points for n in self.coach_notes)
        )


@dataclass
class ProgramAttendanceRecord(Record):
    id: str
    academy_id: str = ""
    program_id: str = ""
    user_id: str = ""
    coach_id: str = ""
    session_date: str = ""
    present: bool = False
    notes: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"academy_id": default_academy_id}


def calculate_na_score(tests: dict[str, Any]) -> int:
    """Overall score: rounded mean of numeric test scores, clamped to 0..100."""
    scores = [v for v in (finite_number(x) for x in tests.values()) if v is not None]
    if not scores:
        return 0
    mean = sum(scores) / len(scores)
    return int(round(min(100.0, max(0.0, mean))))


@dataclass
class AssessmentSession(Record):
    """A player assessment. Immutable while locked, except for notes."""

    id: str
    academy_id: str = ""
    player_id: str = ""
    program_id: str | None = None
    session_date: str = ""
    entered_by: str = ""
    tests: dict[str, Any] = field(default_factory=dict)
    na_score: int = 0
    notes: str | None = None
    test_notes: dict[str, str] | None = None
    is_locked: bool = True
    locked_at: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {
            "academy_id": default_academy_id,
            "tests": dict,
            "is_locked": True,
            "na_score": lambda raw: calculate_na_score(raw.get("tests") or {}),
        }


@dataclass
class Medal(Record):
    id: str
    academy_id: str = ""
    name: str = ""
    name_ar: str = ""
    description: str = ""
    description_ar: str = ""
    points: int = 0
    icon: str = ""
    color: str = "gold"
    is_active: bool = True
    created_at: str = ""

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"academy_id": default_academy_id, "color": "gold", "is_active": True}


@dataclass
class StudentMedal(Record):
    """A medal awarded to a student."""

    id: str
    academy_id: str = ""
    student_id: str = ""
    medal_id: str = ""
    course_id: str | None = None
    attendance_id: str | None = None
    awarded_by: str = ""
    awarded_at: str = ""
    notes: str | None = None

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {"academy_id": default_academy_id}



PLAYER_ASSESSMENT_STATUSES = ("new", "first_assessment_completed", "reassessment", "due_for_reassessment")
POINTS_EVENT_TYPES = ("first_assessment", "reassessment", "badge_granted")

# Older profiles called the points ledger "xp".
LEGACY_XP_TOTAL_KEYS = ("xp_total", "xpTotal")
LEGACY_XP_EVENTS_KEYS = ("xp_events", "xpEvents")


@dataclass
class PointsEvent:
    """One entry of a player's achievement points history."""

    id: str
    type: str
    points: float | int = 0
    created_at: str = ""
    created_by: str | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PointsEvent:
        meta = data.get("meta")
        return cls(
            id=data.get("id") if isinstance(data.get("id"), str) else generate_id(),
            type=data.get("type", ""),
            points=finite_number(data.get("points")) or 0,
            created_at=data.get("created_at") or data.get("createdAt") or utc_now_iso(),
            created_by=data.get("created_by", data.get("createdBy")),
            meta=meta if isinstance(meta, dict) else None,
        )


@dataclass
class BadgeGrant:
    badge_id: str
    granted_at: str
    granted_by: str
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BadgeGrant:
        return cls(
            badge_id=data.get("badge_id", data.get("badgeId", "")),
            granted_at=data.get("granted_at", data.get("grantedAt", "")),
            granted_by=data.get("granted_by", data.get("grantedBy", "")),
            notes=data.get("notes"),
        )


def _first_present(data: dict[str, Any], names: tuple[str, ...]) -> Any:
    return next((data[n] for n in names if data.get(n) is not None), None)


def _raw_points_events(data: dict[str, Any]) -> list[Any]:
    events = data.get("points_events")
    if not isinstance(events, list):
        events = _first_present(data, LEGACY_XP_EVENTS_KEYS)
    return [e for e in events if isinstance(e, dict)] if isinstance(events, list) else []


def _legacy_profile_points_total(data: dict[str, Any]) -> float | int:
    return finite_number(_first_present(data, LEGACY_XP_TOTAL_KEYS)) or 0


def _legacy_profile_dropped_points(data: dict[str, Any]) -> float | int:
    total = finite_number(data.get("points_total"))
    if total is None:
        total = _legacy_profile_points_total(data)
    return total - sum(finite_number(e.get("points")) or 0 for e in _raw_points_events(data))


@dataclass
class PlayerProfile(Record):
    """Academy-level player card carrying the achievement points ledger."""

    id: str
    academy_id: str = ""
    user_id: str = ""
    assessment_status: str = "new"
    last_assessment_at: str | None = None
    identity_key: str | None = None
    points_total: float | int = 0
    dropped_points: float | int = 0
    points_events: list[PointsEvent] = field(default_factory=list)
    badges: list[BadgeGrant] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.points_events = [
            e if isinstance(e, PointsEvent) else PointsEvent.from_dict(e) for e in self.points_events
        ]
        self.badges = [b if isinstance(b, BadgeGrant) else BadgeGrant.from_dict(b) for b in self.badges]

    @classmethod
    def read_defaults(cls, data, default_academy_id):
        return {
            "academy_id": default_academy_id,
            "assessment_status": "new",
            "points_events": _raw_points_events,
            "points_total": _legacy_profile_points_total,
            "dropped_points": _legacy_profile_dropped_points,
            "badges": list,
        }

    @classmethod
    def decode(cls, data, default_academy_id=DEFAULT_ACADEMY_ID):
        """Decode a profile, renaming the legacy xp ledger fields.

        Events are normalized one by one, so a stored history holding
        malformed entries also counts as changed.
        """
        profile, changed = super().decode(data, default_academy_id)
        legacy = any(k in data for k in LEGACY_XP_TOTAL_KEYS + LEGACY_XP_EVENTS_KEYS)
        events = [asdict(e) for e in profile.points_events]
        return profile, changed or legacy or events != data.get("points_events")

    def ledger_drift(self) -> float | int:
        """Stored total minus what the history accounts for. 0 when consistent."""
        return self.points_total - (self.dropped_points + sum(e.points for e in self.points_events))
