"""
Unit tests for player profiles and their achievement points ledger.

Tests cover:
- Lazy profile creation
- Points events, the history cap and dropped_points
- Idempotent badge grants
- Migration of the legacy xp fields on read
"""

import pytest

from academy.academy_db.ledger import MAX_POINTS_EVENTS, apply_points_event
from academy.academy_db.models import PlayerProfile, PointsEvent
from academy.academy_db.repositories import PlayerProfileRepository


def ledger_holds(profile):
    return profile.points_total == profile.dropped_points + sum(e.points for e in profile.points_events)


@pytest.fixture
def profiles(store):
    return PlayerProfileRepository(store)


class TestApplyPointsEvent:
    """Tests for the pure points ledger function."""

    @pytest.fixture
    def profile(self):
        return PlayerProfile(id="pp1", academy_id="a1", user_id="kid1")

    def event(self, i, points):
        return PointsEvent(id=f"e{i}", type="reassessment", points=points, created_at=f"t{i:04d}")

    def test_points_added_newest_first(self, profile):
        updated = apply_points_event(apply_points_event(profile, self.event(1, 10)), self.event(2, 5))
        assert updated.points_total == 15
        assert [e.id for e in updated.points_events] == ["e2", "e1"]
        assert profile.points_total == 0

    def test_cap_folds_into_dropped_points(self, profile):
        current = profile
        for i in range(4):
            current = apply_points_event(current, self.event(i, 10), max_events=2)
        assert current.points_total == 40
        assert current.dropped_points == 20
        assert len(current.points_events) == 2
        assert ledger_holds(current)

    @pytest.mark.parametrize("points", [float("nan"), float("inf"), "ten"])
    def test_invalid_points_apply_zero(self, profile, points):
        updated = apply_points_event(profile, self.event(1, points))
        assert updated.points_total == 0
        assert updated.points_events[0].points == 0

    def test_invalid_cap(self, profile):
        with pytest.raises(ValueError):
            apply_points_event(profile, self.event(1, 1), max_events=0)


class TestPlayerProfileRepository:
    """Tests for PlayerProfileRepository."""

    def test_ensure_creates_once(self, store, profiles):
        first = profiles.ensure("a1", "kid1")
        writes = store.write_count
        second = profiles.ensure("a1", "kid1")

        assert second.id == first.id
        assert store.write_count == writes
        assert first.assessment_status == "new"
        assert store.keys("player_profile:a1:") == ["player_profile:a1:kid1"]

    def test_profiles_scoped_by_academy(self, profiles):
        profiles.ensure("a1", "kid1")
        profiles.ensure("a2", "kid1")
        assert [p.academy_id for p in profiles.list("a1")] == ["a1"]
        assert profiles.find("a3", "kid1") is None

    def test_append_points_event(self, profiles):
        profiles.append_points_event("a1", "kid1", "first_assessment", 50, created_by="c1")
        profile = profiles.append_points_event("a1", "kid1", "reassessment", 20, meta={"session": "s1"})

        stored = profiles.find("a1", "kid1")
        assert stored.points_total == 70
        assert [e.type for e in stored.points_events] == ["reassessment", "first_assessment"]
        assert stored.points_events[0].meta == {"session": "s1"}
        assert stored.points_events[1].created_by == "c1"
        assert profile.points_total == stored.points_total

    def test_default_event_cap(self, profiles):
        for _ in range(MAX_POINTS_EVENTS + 5):
            profiles.append_points_event("a1", "kid1", "reassessment", 1)
        stored = profiles.find("a1", "kid1")
        assert len(stored.points_events) == MAX_POINTS_EVENTS
        assert stored.points_total == MAX_POINTS_EVENTS + 5
        assert ledger_holds(stored)

    def test_unknown_event_type(self, profiles):
        with pytest.raises(ValueError):
            profiles.append_points_event("a1", "kid1", "birthday", 5)

    def test_grant_badge_is_idempotent(self, store, profiles):
        profiles.grant_badge("a1", "kid1", "sharp_shooter", "c1", notes="Ten in a row")
        writes = store.write_count
        profile = profiles.grant_badge("a1", "kid1", "sharp_shooter", "c2")

        assert store.write_count == writes
        assert [(b.badge_id, b.granted_by, b.notes) for b in profile.badges] == [
            ("sharp_shooter", "c1", "Ten in a row")
        ]

    def test_update_keeps_ledger_fields(self, profiles):
        profiles.append_points_event("a1", "kid1", "first_assessment", 50)
        updated = profiles.update(
            "a1", "kid1", {"assessment_status": "first_assessment_completed", "points_total": 999}
        )
        assert updated.assessment_status == "first_assessment_completed"
        assert updated.points_total == 50

    def test_update_rejects_unknown_status(self, profiles):
        with pytest.raises(ValueError):
            profiles.update("a1", "kid1", {"assessment_status": "graduated"})

    def test_delete(self, profiles):
        profiles.ensure("a1", "kid1")
        assert profiles.delete("a1", "kid1") is True
        assert profiles.find("a1", "kid1") is None


class TestLegacyProfiles:
    """Tests for profiles written before the points ledger rename."""

    def test_xp_fields_renamed_on_read(self, store, profiles):
        store.put_raw(
            "player_profile:a1:kid1",
            {
                "id": "pp1",
                "academy_id": "a1",
                "user_id": "kid1",
                "xpTotal": 120,
                "xpEvents": [
                    {"id": "x1", "type": "first_assessment", "points": 100, "createdAt": "2024-01-01"},
                    {"type": "badge_granted", "points": "bad"},
                ],
            },
        )

        profile = profiles.find("a1", "kid1")

        assert profile.points_total == 120
        assert [e.points for e in profile.points_events] == [100, 0]
        assert profile.points_events[0].created_at == "2024-01-01"
        assert profile.points_events[1].id
        assert profile.dropped_points == 20
        assert ledger_holds(profile)
        raw = store.get("player_profile:a1:kid1")
        assert "xpTotal" not in raw and "xpEvents" not in raw
        assert raw["points_total"] == 120

    def test_migration_is_written_once(self, store, profiles):
        store.put_raw("player_profile:a1:kid1", {"id": "pp1", "user_id": "kid1", "xp_total": 5})
        profiles.find("a1", "kid1")
        writes = store.write_count
        profile = profiles.find("a1", "kid1")

        assert store.write_count == writes
        assert profile.academy_id == "default"
        assert profile.points_total == 5
        assert profile.badges == []

    def test_normalized_profile_not_rewritten(self, store, profiles):
        profiles.append_points_event("a1", "kid1", "reassessment", 3)
        profiles.grant_badge("a1", "kid1", "streak", "c1")
        writes = store.write_count
        profiles.find("a1", "kid1")
        assert store.write_count == writes
