"""Telegram reminder adapter — implements ReminderSink.

Wraps a telegram.Bot instance and resolves each user's chat through the
directory.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from telegram import Bot
from telegram.helpers import escape_markdown

from attendance.errors import NotificationDeliveryError

if TYPE_CHECKING:
    from attendance.ports.directory_port import DirectoryPort

logger = logging.getLogger(__name__)


def format_reminder(appointment_name: str, appointment_date: datetime) -> str:
    """Markdown reminder text. The name is user-supplied, so it is escaped."""
    return (
        f"Reminder: please respond to *{escape_markdown(appointment_name, version=1)}* "
        f"on {appointment_date.strftime('%d.%m.%Y %H:%M')}."
    )


class TelegramReminderSink:
    """Telegram implementation of ReminderSink."""

    def __init__(self, bot: Bot, directory: DirectoryPort) -> None:
        self._bot = bot
        self._directory = directory

    async def send_reminder(
        self,
        user_id: str,
        appointment_id: int,
        appointment_name: str,
        appointment_date: datetime,
    ) -> None:
        user = self._directory.get_user(user_id)
        if user is None or user.chat_id is None:
            raise NotificationDeliveryError(
                f"No Telegram chat linked for user {user_id}"
            )
        await self._bot.send_message(
            chat_id=user.chat_id,
            text=format_reminder(appointment_name, appointment_date),
            parse_mode="Markdown",
        )
        logger.debug("Reminder for #%d delivered to chat %d", appointment_id, user.chat_id)
