"""Storage ports — the persistence operations the core relies on.

Inactive (soft-deleted) appointments are filtered at this boundary; the core
never sees them. Ordering of returned lists is not relied upon unless noted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from attendance.data.models import Appointment, AttendanceResponse, ReminderLog, Streak


class AppointmentStore(Protocol):

    def get(self, appointment_id: int) -> Appointment | None: ...

    def find_past(self, now: datetime | None = None) -> list[Appointment]: ...

    def find_starting_between(self, start: datetime, end: datetime) -> list[Appointment]: ...


class ResponseStore(Protocol):

    def find_by_user(self, user_id: str) -> list[AttendanceResponse]: ...

    def find_by_appointment(self, appointment_id: int) -> list[AttendanceResponse]: ...

    def find_by_appointment_and_user(
        self, appointment_id: int, user_id: str,
    ) -> AttendanceResponse | None: ...

    def find_appointments_with_checkin(self, appointment_ids: list[int]) -> set[int]: ...

    def list_response_user_ids(self) -> list[str]: ...

    def save(self, response: AttendanceResponse) -> AttendanceResponse: ...


class ReminderLogStore(Protocol):

    def find_latest_for_user(self, appointment_id: int, user_id: str) -> ReminderLog | None: ...

    def find_by_appointment(self, appointment_id: int) -> list[ReminderLog]:
        """All reminders for the appointment, newest first."""
        ...

    def insert(self, log: ReminderLog) -> ReminderLog: ...


class StreakStore(Protocol):

    def find_or_create(self, user_id: str) -> Streak: ...

    def upsert(self, streak: Streak) -> Streak: ...

    def find_top(self, limit: int = 10) -> list[Streak]: ...
