"""
Attendance — Streak Engine.

Replays a user's past appointments oldest-first and derives the current
streak, the longest streak and their dates. The cached Streak row is fully
overwritten on every recalculation, so running it twice is harmless.

Classification per (user, appointment):

    RSVP     check-ins performed?   user's check-in   outcome
    none     -                      -                 break
    no       -                      -                 skip
    yes      no                     -                 attend
    yes      yes                    yes               attend
    yes      yes                    not yes           break
    maybe    -                      yes               attend
    maybe    -                      not yes           break
    other    -                      -                 break
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from attendance.data.models import (
    AttendanceOutcome,
    LeaderboardEntry,
    RecalculationReport,
    Streak,
)

if TYPE_CHECKING:
    from attendance.core.visibility import VisibilityResolver
    from attendance.data.models import Appointment, AttendanceResponse
    from attendance.ports.directory_port import DirectoryPort
    from attendance.ports.storage_port import AppointmentStore, ResponseStore, StreakStore

logger = logging.getLogger(__name__)


def classify_attendance(
    response: AttendanceResponse | None, checkin_performed: bool,
) -> AttendanceOutcome:
    """Classify one appointment for one user as attend, break or skip.

    checkin_performed is per appointment: whether anyone was checked in at
    all. Unrecognized RSVP values fall through to break.
    """
    if response is None:
        return AttendanceOutcome.BREAK

    rsvp = response.response
    checked_in_yes = response.checkin_state == "yes"

    if rsvp == "no":
        return AttendanceOutcome.SKIP

    if rsvp == "yes":
        if not checkin_performed:
            return AttendanceOutcome.ATTEND
        return AttendanceOutcome.ATTEND if checked_in_yes else AttendanceOutcome.BREAK

    if rsvp == "maybe":
        return AttendanceOutcome.ATTEND if checked_in_yes else AttendanceOutcome.BREAK

    return AttendanceOutcome.BREAK


class StreakEngine:
    """Recalculates and serves cached attendance streaks."""

    def __init__(
        self,
        appointments: AppointmentStore,
        responses: ResponseStore,
        streaks: StreakStore,
        visibility: VisibilityResolver,
        directory: DirectoryPort,
    ) -> None:
        self._appointments = appointments
        self._responses = responses
        self._streaks = streaks
        self._visibility = visibility
        self._directory = directory

    def get_user_streak(self, user_id: str) -> Streak:
        """Cached streak. Does not recalculate."""
        return self._streaks.find_or_create(user_id)

    def recalculate_streak(self, user_id: str, now: datetime | None = None) -> Streak:
        """Rebuild the user's streak from their full history."""
        if now is None:
            now = datetime.now()

        past = sorted(
            self._appointments.find_past(now),
            key=lambda a: (a.start_datetime, a.id),
        )
        eligible = [a for a in past if self._is_eligible(a, user_id)]

        response_map = {r.appointment_id: r for r in self._responses.find_by_user(user_id)}
        checkin_performed = self._responses.find_appointments_with_checkin(
            [a.id for a in eligible]
        )

        current = 0
        longest = 0
        run_start: datetime | None = None
        longest_date: datetime | None = None

        for appointment in eligible:
            outcome = classify_attendance(
                response_map.get(appointment.id),
                appointment.id in checkin_performed,
            )
            if outcome is AttendanceOutcome.ATTEND:
                current += 1
                if run_start is None:
                    run_start = appointment.start_datetime
                if current > longest:
                    longest = current
                    longest_date = appointment.start_datetime
            elif outcome is AttendanceOutcome.BREAK:
                current = 0
                run_start = None

        streak = Streak(
            user_id=user_id,
            current_streak=current,
            longest_streak=longest,
            streak_start_date=run_start,
            longest_streak_date=longest_date,
            last_calculated_at=datetime.now(timezone.utc),
        )
        self._streaks.upsert(streak)
        logger.info(
            "Streak recalculated for %s: current=%d longest=%d (%d eligible appointments)",
            user_id, current, longest, len(eligible),
        )
        return streak

    def recalculate_all(self, now: datetime | None = None) -> RecalculationReport:
        """Recalculate every user with at least one response.

        A failure for one user is logged and recorded; the batch continues.
        """
        report = RecalculationReport()
        user_ids = self._responses.list_response_user_ids()
        logger.info("Recalculating streaks for %d users", len(user_ids))

        for user_id in user_ids:
            try:
                self.recalculate_streak(user_id, now=now)
                report.recalculated += 1
            except Exception as exc:
                logger.error("Streak recalculation failed for %s: %s", user_id, exc)
                report.failures[user_id] = str(exc)

        logger.info(
            "Recalculated streaks for %d users (%d failed)",
            report.recalculated, len(report.failures),
        )
        return report

    def get_top_streaks(self, limit: int = 10) -> list[LeaderboardEntry]:
        """Leaderboard by current streak, enriched with display names."""
        entries = []
        for streak in self._streaks.find_top(limit):
            user = self._directory.get_user(streak.user_id)
            entries.append(LeaderboardEntry(
                user_id=streak.user_id,
                display_name=user.display_name if user else streak.user_id,
                current_streak=streak.current_streak,
                longest_streak=streak.longest_streak,
                level=streak.level,
            ))
        return entries

    def _is_eligible(self, appointment: Appointment, user_id: str) -> bool:
        try:
            return self._visibility.is_target_attendee(appointment, user_id)
        except Exception as exc:
            logger.warning(
                "Skipping appointment #%d for %s: audience check failed: %s",
                appointment.id, user_id, exc,
            )
            return False
