"""Notification port — abstract interface for delivering reminders to users.

Core modules depend on this protocol, never on a specific messaging provider.
Implementations raise NotificationDeliveryError (or any exception) on failure;
the reminder scheduler catches, logs and moves on.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ReminderSink(Protocol):
    """Abstract reminder delivery used by the reminder scheduler."""

    async def send_reminder(
        self,
        user_id: str,
        appointment_id: int,
        appointment_name: str,
        appointment_date: datetime,
    ) -> None: ...
