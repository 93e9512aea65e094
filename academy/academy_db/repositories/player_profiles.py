"""
Player profiles: the academy-level player card and its achievement points.

Keys:
    player_profile:{academyId}:{userId}

A profile is created lazily the first time anything touches it. Its points
history follows the same ledger rules as coach notes (see ledger.py), with
a smaller cap. Badges are granted at most once each.
"""

from __future__ import annotations

import logging
from typing import Any

from ..keyspace import composite_key
from ..ledger import MAX_POINTS_EVENTS, apply_points_event
from ..models import PLAYER_ASSESSMENT_STATUSES, POINTS_EVENT_TYPES, BadgeGrant, PlayerProfile, PointsEvent
from ..storage.base import generate_id
from .base import BaseRepository, apply_changes

logger = logging.getLogger(__name__)

PLAYER_PROFILE = "player_profile"


class PlayerProfileRepository(BaseRepository[PlayerProfile]):
    model = PlayerProfile

    def _key(self, academy_id: str, user_id: str) -> str:
        return composite_key(PLAYER_PROFILE, academy_id, user_id)

    def find(self, academy_id: str, user_id: str) -> PlayerProfile | None:
        return self._load(self._key(academy_id, user_id))

    def ensure(self, academy_id: str, user_id: str) -> PlayerProfile:
        """Return the player's profile, creating an empty one if missing."""
        existing = self.find(academy_id, user_id)
        if existing is not None:
            return existing
        now = self._now()
        profile = PlayerProfile(
            id=generate_id(),
            academy_id=academy_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        logger.info(
            f"Created player profile for {user_id}",
            extra={"academy_id": academy_id, "user_id": user_id},
        )
        return self._save(self._key(academy_id, user_id), profile)

    def list(self, academy_id: str) -> list[PlayerProfile]:
        prefix = composite_key(PLAYER_PROFILE, academy_id) + ":"
        return [p for _, p in self._scan_prefix(prefix)]

    def update(self, academy_id: str, user_id: str, changes: dict[str, Any]) -> PlayerProfile:
        """Update assessment status or identity fields. Ledger fields are fixed.

        Raises:
            ValueError: If assessment_status is not a known status
        """
        status = changes.get("assessment_status")
        if status is not None and status not in PLAYER_ASSESSMENT_STATUSES:
            raise ValueError(f"Unknown assessment status: {status}")
        profile = self.ensure(academy_id, user_id)
        apply_changes(
            profile,
            changes,
            protected=(
                "id", "academy_id", "user_id", "created_at",
                "points_total", "dropped_points", "points_events", "badges",
            ),
        )
        profile.updated_at = self._now()
        return self._save(self._key(academy_id, user_id), profile)

    def delete(self, academy_id: str, user_id: str) -> bool:
        return self._remove(self._key(academy_id, user_id))

    def append_points_event(
        self,
        academy_id: str,
        user_id: str,
        event_type: str,
        points: Any,
        created_by: str | None = None,
        meta: dict[str, Any] | None = None,
        max_events: int = MAX_POINTS_EVENTS,
    ) -> PlayerProfile:
        """Record an achievement event and add its points to the total.

        Raises:
            ValueError: If event_type is not a known event type
        """
        if event_type not in POINTS_EVENT_TYPES:
            raise ValueError(f"Unknown points event type: {event_type}")
        profile = self.ensure(academy_id, user_id)
        now = self._now()
        event = PointsEvent(
            id=generate_id(),
            type=event_type,
            points=points,
            created_at=now,
            created_by=created_by,
            meta=meta,
        )
        updated = apply_points_event(profile, event, max_events=max_events, now=now)
        return self._save(self._key(academy_id, user_id), updated)

    def grant_badge(
        self,
        academy_id: str,
        user_id: str,
        badge_id: str,
        granted_by: str,
        notes: str | None = None,
    ) -> PlayerProfile:
        """Grant a badge. Granting a badge the player already holds is a no-op."""
        profile = self.ensure(academy_id, user_id)
        if any(b.badge_id == badge_id for b in profile.badges):
            return profile
        now = self._now()
        grant = BadgeGrant(badge_id=badge_id, granted_at=now, granted_by=granted_by, notes=notes)
        profile.badges = [grant, *profile.badges]
        profile.updated_at = now
        logger.info(
            f"Granted badge {badge_id} to {user_id}",
            extra={"academy_id": academy_id, "user_id": user_id, "badge_id": badge_id},
        )
        return self._save(self._key(academy_id, user_id), profile)
