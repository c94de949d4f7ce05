"""
Attendance — Daily Reminder Job.

Once a day, reminds target attendees who have not RSVP'd to appointments
starting within the configured look-ahead window. The reminder log throttles
re-sends: frequency 0 reminds once per appointment, N re-reminds every N
days. Running the job twice inside a cool-down never double-notifies.

This module is provider-agnostic: it depends on the ReminderSink protocol,
not on a specific messaging implementation.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from attendance.data.models import ReminderLog, ReminderRunResult

if TYPE_CHECKING:
    from attendance.core.config_service import ConfigService
    from attendance.core.visibility import VisibilityResolver
    from attendance.data.models import Appointment
    from attendance.ports.notification_port import ReminderSink
    from attendance.ports.storage_port import (
        AppointmentStore,
        ReminderLogStore,
        ResponseStore,
    )

logger = logging.getLogger(__name__)


def reminder_window(now: datetime, reminder_days: int) -> tuple[datetime, datetime]:
    """[today 00:00:00, today + reminder_days 23:59:59]."""
    today = now.date()
    start = datetime.combine(today, time.min)
    end = datetime.combine(today + timedelta(days=reminder_days), time(23, 59, 59))
    return start, end


def is_reminder_due(
    last_reminded_at: datetime | None, now: datetime, frequency_days: int,
) -> bool:
    """Whether a user may be reminded again for the same appointment."""
    if last_reminded_at is None:
        return True
    if frequency_days == 0:
        return False
    days_since = abs(now - last_reminded_at).days
    return days_since >= frequency_days


class ReminderScheduler:
    """Runs the daily reminder batch."""

    def __init__(
        self,
        appointments: AppointmentStore,
        responses: ResponseStore,
        reminder_logs: ReminderLogStore,
        visibility: VisibilityResolver,
        notifier: ReminderSink,
        config: ConfigService,
    ) -> None:
        self._appointments = appointments
        self._responses = responses
        self._reminder_logs = reminder_logs
        self._visibility = visibility
        self._notifier = notifier
        self._config = config

    async def run(self, now: datetime | None = None) -> ReminderRunResult:
        """Scan upcoming appointments and send due reminders."""
        result = ReminderRunResult()
        logger.info("Reminder job starting...")

        if not self._config.are_reminders_enabled():
            logger.info("Reminder job stopped - reminders are disabled")
            return result

        if now is None:
            now = datetime.now()
        reminder_days = self._config.get_reminder_days()
        frequency = self._config.get_reminder_frequency()
        start, end = reminder_window(now, reminder_days)

        appointments = self._appointments.find_starting_between(start, end)
        logger.info(
            "Found %d appointments between %s and %s (frequency %d days)",
            len(appointments), start.date(), end.date(), frequency,
        )

        for appointment in appointments:
            result.processed_appointments += 1
            await self._remind_for_appointment(appointment, now, frequency, result)

        logger.info(
            "Reminder job completed: %d appointments, %d sent, %d skipped, %d failed",
            result.processed_appointments, result.sent, result.skipped, result.failed,
        )
        return result

    async def _remind_for_appointment(
        self,
        appointment: Appointment,
        now: datetime,
        frequency: int,
        result: ReminderRunResult,
    ) -> None:
        responded = {
            r.user_id for r in self._responses.find_by_appointment(appointment.id)
            if r.response is not None
        }

        # Logs arrive newest first; keep the first seen per user
        latest_by_user: dict[str, datetime] = {}
        for log in self._reminder_logs.find_by_appointment(appointment.id):
            latest_by_user.setdefault(log.user_id, log.reminded_at)

        targets = self._visibility.expand_audience(appointment)
        logger.debug(
            "Appointment #%d: %d target attendees, %d responded",
            appointment.id, len(targets), len(responded),
        )

        for user_id in sorted(targets):
            if user_id in responded:
                result.skipped += 1
                logger.debug("Skipping %s for #%d - already responded", user_id, appointment.id)
                continue

            if not is_reminder_due(latest_by_user.get(user_id), now, frequency):
                result.skipped += 1
                logger.debug("Skipping %s for #%d - recently reminded", user_id, appointment.id)
                continue

            try:
                await self._notifier.send_reminder(
                    user_id, appointment.id, appointment.name, appointment.start_datetime,
                )
                self._reminder_logs.insert(ReminderLog(
                    appointment_id=appointment.id, user_id=user_id, reminded_at=now,
                ))
                result.sent += 1
                logger.info("Reminder sent to %s for appointment #%d", user_id, appointment.id)
            except Exception as exc:
                result.failed += 1
                logger.error(
                    "Failed to send reminder to %s for appointment #%d: %s",
                    user_id, appointment.id, exc,
                )
