"""
Attendance — Data Models.

Appointments, responses and reminder logs persist in SQLite; streaks are a
per-user cache that is fully rebuilt on every recalculation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

VALID_RESPONSES = frozenset({"yes", "no", "maybe"})


@dataclass(frozen=True)
class AudienceSpec:
    """Who an appointment is meant for.

    All three sets empty means the appointment is open to every directory user.
    """

    users: frozenset[str] = frozenset()
    groups: frozenset[str] = frozenset()
    teams: frozenset[str] = frozenset()

    @property
    def is_open(self) -> bool:
        return not (self.users or self.groups or self.teams)

    @classmethod
    def of(
        cls,
        users: list[str] | None = None,
        groups: list[str] | None = None,
        teams: list[str] | None = None,
    ) -> AudienceSpec:
        return cls(
            users=frozenset(users or ()),
            groups=frozenset(groups or ()),
            teams=frozenset(teams or ()),
        )


@dataclass
class User:
    """A directory user. chat_id links the user to a Telegram chat."""

    user_id: str
    display_name: str
    chat_id: int | None = None
    created_at: str = ""


@dataclass
class Appointment:
    """A scheduled event that users can RSVP to and be checked in for."""

    id: int
    name: str
    start_datetime: datetime
    end_datetime: datetime
    created_by: str
    description: str = ""
    audience: AudienceSpec = field(default_factory=AudienceSpec)
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass
class AttendanceResponse:
    """One user's RSVP and check-in state for one appointment.

    RSVP (response) and check-in (checkin_state) are independent; a row can be
    created by either action first.
    """

    appointment_id: int
    user_id: str
    response: str | None = None          # yes | no | maybe
    comment: str = ""
    responded_at: datetime | None = None
    checkin_state: str | None = None     # yes | no | maybe
    checkin_comment: str | None = None
    checkin_by: str | None = None
    checkin_at: datetime | None = None
    id: int | None = None

    @property
    def is_checked_in(self) -> bool:
        return bool(self.checkin_state)


@dataclass
class ReminderLog:
    """A reminder that was actually sent. Append-only."""

    appointment_id: int
    user_id: str
    reminded_at: datetime
    id: int | None = None


@dataclass
class Streak:
    """Cached attendance streak for one user."""

    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    streak_start_date: datetime | None = None
    longest_streak_date: datetime | None = None
    last_calculated_at: datetime | None = None

    @property
    def level(self) -> str:
        return streak_level(self.current_streak)

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "streakStartDate": _iso(self.streak_start_date),
            "longestStreakDate": _iso(self.longest_streak_date),
            "lastCalculatedAt": _iso(self.last_calculated_at),
            "streakLevel": self.level,
        }


class AttendanceOutcome(str, Enum):
    ATTEND = "attend"
    BREAK = "break"
    SKIP = "skip"


@dataclass
class LeaderboardEntry:
    user_id: str
    display_name: str
    current_streak: int
    longest_streak: int
    level: str


@dataclass
class RosterEntry:
    """One target attendee on an appointment's check-in roster."""

    user_id: str
    display_name: str
    response: str | None = None
    comment: str | None = None
    checkin_state: str | None = None
    checkin_comment: str | None = None
    checkin_by: str | None = None
    checkin_at: datetime | None = None

    @property
    def is_checked_in(self) -> bool:
        return bool(self.checkin_state)


@dataclass
class RecalculationReport:
    recalculated: int = 0
    failures: dict[str, str] = field(default_factory=dict)


@dataclass
class ReminderRunResult:
    processed_appointments: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def streak_level(current_streak: int) -> str:
    """Cosmetic tier for a streak count."""
    if current_streak <= 0:
        return "none"
    if current_streak <= 4:
        return "starting"
    if current_streak <= 9:
        return "consistent"
    if current_streak <= 24:
        return "on_fire"
    return "unstoppable"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat(sep=" ", timespec="seconds") if value else None
