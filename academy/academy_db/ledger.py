"""
Progression ledger rules for program enrollments and player profiles.

A coach note optionally carries a points delta. Notes are kept newest
first and capped; the running total is only ever moved by the appended
delta, and the deltas of notes pushed out by the cap are folded into
dropped_points so the ledger still adds up.

Invariants:
    - points_total == dropped_points + sum(applied delta of kept notes)
    - A non-numeric or non-finite delta applies 0 but the note is kept,
      stored with points_delta=None so the ledger stays JSON-safe
    - len(coach_notes) <= max_notes
    - Player profiles keep the same equation over points_events, capped
      at MAX_POINTS_EVENTS

How to change safely:
    - Keep apply_coach_note pure; persistence belongs to the repository
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, time, timezone

from dateutil import parser as dateutil_parser

from .models import CoachNote, PlayerProfile, PointsEvent, ProgramEnrollment, finite_number, utc_now_iso

logger = logging.getLogger(__name__)

MAX_COACH_NOTES = 200
MAX_POINTS_EVENTS = 100


def apply_coach_note(
    enrollment: ProgramEnrollment,
    note: CoachNote,
    max_notes: int = MAX_COACH_NOTES,
    now: str | None = None,
) -> ProgramEnrollment:
    """Return a copy of enrollment with note prepended to its ledger.

    Args:
        enrollment: Current enrollment state
        note: Note to append; points_delta may be missing or invalid
        max_notes: History cap, oldest notes are dropped first
        now: Timestamp for updated_at

    Returns:
        New ProgramEnrollment; the input is not modified
    """
    if max_notes < 1:
        raise ValueError("max_notes must be at least 1")

    delta = finite_number(note.points_delta)
    if note.points_delta is not None and delta is None:
        logger.warning(
            "Coach note carries a non-numeric points delta; applying 0",
            extra={"note_id": note.id, "enrollment_id": enrollment.id},
        )
        note = replace(note, points_delta=None)

    notes = [note, *enrollment.coach_notes]
    kept, dropped = notes[:max_notes], notes[max_notes:]

    return replace(
        enrollment,
        coach_notes=kept,
        points_total=enrollment.points_total + (delta or 0),
        dropped_points=enrollment.dropped_points + sum(n.applied_points for n in dropped),
        updated_at=now or utc_now_iso(),
    )


def apply_points_event(
    profile: PlayerProfile,
    event: PointsEvent,
    max_events: int = MAX_POINTS_EVENTS,
    now: str | None = None,
) -> PlayerProfile:
    """Return a copy of profile with event prepended to its points history.

    Same bookkeeping as apply_coach_note: the total moves by the event's
    points only, and events pushed out by the cap fold into dropped_points.
    """
    if max_events < 1:
        raise ValueError("max_events must be at least 1")

    points = finite_number(event.points)
    if points is None:
        logger.warning(
            "Points event carries a non-numeric value; applying 0",
            extra={"event_id": event.id, "profile_id": profile.id},
        )
        event = replace(event, points=0)

    events = [event, *profile.points_events]
    kept, dropped = events[:max_events], events[max_events:]

    return replace(
        profile,
        points_events=kept,
        points_total=profile.points_total + event.points,
        dropped_points=profile.dropped_points + sum(e.points for e in dropped),
        updated_at=now or utc_now_iso(),
    )


def normalize_session_date(value: str | None, today: date | None = None) -> str:
    """Normalize a session date to YYYY-MM-DD.

    Accepts anything dateutil can parse (ISO-8601, "2024/05/01", "May 1, 2024",
    RFC 2822). Aware values are converted to UTC first. Empty or unparsable
    input falls back to today (UTC).
    """
    current = today or datetime.now(timezone.utc).date()
    fallback = current.isoformat()
    if not value:
        return fallback

    try:
        parsed = dateutil_parser.parse(value.strip(), default=datetime.combine(current, time()))
    except (ValueError, OverflowError):
        logger.warning(
            f"Unparsable session date {value!r}; using {fallback}",
            extra={"session_date": value},
        )
        return fallback
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()
