"""Tests for attendance.data.models — dataclasses and derived fields."""

from datetime import datetime

import pytest

from attendance.data.models import AttendanceResponse, AudienceSpec, Streak, streak_level


class TestAudienceSpec:
    def test_default_is_open(self):
        assert AudienceSpec().is_open is True

    def test_any_list_makes_it_restricted(self):
        assert AudienceSpec.of(users=["alice"]).is_open is False
        assert AudienceSpec.of(groups=["staff"]).is_open is False
        assert AudienceSpec.of(teams=["t1"]).is_open is False

    def test_of_accepts_none(self):
        spec = AudienceSpec.of(users=None, groups=["g"], teams=None)
        assert spec.users == frozenset()
        assert spec.groups == frozenset({"g"})


class TestStreakLevel:
    @pytest.mark.parametrize("count,level", [
        (-1, "none"),
        (0, "none"),
        (1, "starting"),
        (4, "starting"),
        (5, "consistent"),
        (9, "consistent"),
        (10, "on_fire"),
        (24, "on_fire"),
        (25, "unstoppable"),
        (100, "unstoppable"),
    ])
    def test_boundaries(self, count, level):
        assert streak_level(count) == level

    def test_streak_level_property(self):
        assert Streak(user_id="x", current_streak=7).level == "consistent"


class TestStreakToDict:
    def test_serializes_dates_and_level(self):
        streak = Streak(
            user_id="alice",
            current_streak=2,
            longest_streak=3,
            streak_start_date=datetime(2026, 1, 5, 18, 0),
            longest_streak_date=None,
        )
        data = streak.to_dict()
        assert data["userId"] == "alice"
        assert data["currentStreak"] == 2
        assert data["longestStreak"] == 3
        assert data["streakStartDate"] == "2026-01-05 18:00:00"
        assert data["longestStreakDate"] is None
        assert data["streakLevel"] == "starting"


def test_is_checked_in_requires_state():
    row = AttendanceResponse(appointment_id=1, user_id="a")
    assert row.is_checked_in is False
    row.checkin_state = "no"
    assert row.is_checked_in is True
