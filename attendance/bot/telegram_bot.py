"""
Attendance — Telegram Bot.

The host surface: RSVP, check-in, roster and streak commands, a /link
command to connect directory users to chats, and the daily reminder job
on the bot's job queue.

Security-first: chats not linked to a directory user are silently ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes
from telegram.helpers import escape_markdown

from attendance.config import settings
from attendance.core.config_service import PERMISSION_CHECKIN, PERMISSION_MANAGE_APPOINTMENTS
from attendance.errors import InvalidInputError, NotFoundError, PermissionDeniedError

if TYPE_CHECKING:
    from attendance.adapters.service_factory import Services
    from attendance.data.models import Streak, User
    from attendance.ports.notification_port import ReminderSink

logger = logging.getLogger(__name__)

DEFAULT_LEADERBOARD_SIZE = 10
MAX_LEADERBOARD_SIZE = 50

LEVEL_LABELS = {
    "none": "no streak yet",
    "starting": "getting started",
    "consistent": "consistent",
    "on_fire": "on fire",
    "unstoppable": "unstoppable",
}


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def linked_users_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Resolve the directory user behind the chat, or silently ignore.

    The wrapped handler receives the resolved User as a third argument.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        services: Services = context.bot_data["services"]
        tg_user = update.effective_user
        user = services.directory.find_by_chat_id(tg_user.id) if tg_user else None
        if user is None:
            uid = tg_user.id if tg_user else "unknown"
            logger.warning("Unlinked access attempt from telegram id=%s", uid)
            return
        return await func(update, context, user)

    return wrapper


def _format_streak(streak: Streak) -> str:
    lines = [
        f"Current streak: *{streak.current_streak}* ({LEVEL_LABELS[streak.level]})",
        f"Longest streak: {streak.longest_streak}",
    ]
    if streak.streak_start_date:
        lines.append(f"Running since: {streak.streak_start_date.strftime('%d.%m.%Y')}")
    if streak.longest_streak_date:
        lines.append(f"Record set: {streak.longest_streak_date.strftime('%d.%m.%Y')}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@linked_users_only
async def cmd_streak(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /streak — show the cached streak."""
    services: Services = context.bot_data["services"]
    if not services.config.are_streaks_enabled():
        await update.message.reply_text("Current streak: 0 (streaks are disabled)")
        return

    streak = services.streaks.get_user_streak(user.user_id)
    await update.message.reply_text(_format_streak(streak), parse_mode="Markdown")


@linked_users_only
async def cmd_recalc(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /recalc — recalculate and show the caller's streak."""
    services: Services = context.bot_data["services"]
    if not services.config.are_streaks_enabled():
        await update.message.reply_text("Current streak: 0 (streaks are disabled)")
        return

    try:
        streak = services.streaks.recalculate_streak(user.user_id)
    except Exception as exc:
        logger.error("/recalc error for %s: %s", user.user_id, exc)
        await update.message.reply_text("Couldn't recalculate your streak. Please try again.")
        return
    await update.message.reply_text(_format_streak(streak), parse_mode="Markdown")


@linked_users_only
async def cmd_leaders(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /leaders [n] — current streak leaderboard."""
    services: Services = context.bot_data["services"]
    if not services.config.are_streaks_enabled():
        await update.message.reply_text("Streaks are disabled.")
        return

    limit = DEFAULT_LEADERBOARD_SIZE
    if context.args:
        try:
            limit = max(1, min(MAX_LEADERBOARD_SIZE, int(context.args[0])))
        except ValueError:
            await update.message.reply_text("Usage: /leaders [count]")
            return

    leaders = services.streaks.get_top_streaks(limit)
    if not leaders:
        await update.message.reply_text("Nobody has an active streak yet.")
        return

    lines = ["*Streak leaders:*\n"]
    for rank, entry in enumerate(leaders, start=1):
        lines.append(
            f"{rank}. {escape_markdown(entry.display_name, version=1)} — {entry.current_streak} "
            f"(best {entry.longest_streak})"
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@linked_users_only
async def cmd_recalcall(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /recalcall — recalculate every user's streak (managers only)."""
    services: Services = context.bot_data["services"]
    if not services.visibility.has_permission(user.user_id, PERMISSION_MANAGE_APPOINTMENTS):
        await update.message.reply_text("You are not allowed to do that.")
        return

    report = services.streaks.recalculate_all()
    lines = [f"Recalculated streaks for {report.recalculated} users."]
    for failed_user, error in report.failures.items():
        lines.append(f"  Error for {failed_user}: {error}")
    await update.message.reply_text("\n".join(lines))


def _parse_appointment_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


@linked_users_only
async def cmd_rsvp(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /rsvp <appointment id> <yes|no|maybe> [comment]."""
    services: Services = context.bot_data["services"]
    args = context.args or []
    appointment_id = _parse_appointment_id(args)
    if appointment_id is None or len(args) < 2:
        await update.message.reply_text("Usage: /rsvp <appointment id> yes|no|maybe [comment]")
        return

    response = args[1].lower()
    comment = " ".join(args[2:])
    try:
        services.responses.submit_response(appointment_id, user.user_id, response, comment)
    except InvalidInputError:
        await update.message.reply_text("Response must be yes, no or maybe.")
        return
    except NotFoundError:
        await update.message.reply_text("Appointment not found.")
        return
    except PermissionDeniedError:
        await update.message.reply_text("You can't respond to that appointment.")
        return
    await update.message.reply_text(f"Saved your response: {response}.")


@linked_users_only
async def cmd_checkin(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /checkin <appointment id> <user id> <yes|no|maybe> [comment]."""
    services: Services = context.bot_data["services"]
    if not services.visibility.has_permission(user.user_id, PERMISSION_CHECKIN):
        await update.message.reply_text("You are not allowed to do that.")
        return

    args = context.args or []
    appointment_id = _parse_appointment_id(args)
    if appointment_id is None or len(args) < 3:
        await update.message.reply_text(
            "Usage: /checkin <appointment id> <user id> yes|no|maybe [comment]"
        )
        return

    target_user_id, state = args[1], args[2].lower()
    comment = " ".join(args[3:]) or None
    try:
        services.responses.check_in(appointment_id, target_user_id, state, comment, user.user_id)
    except InvalidInputError:
        await update.message.reply_text("Check-in state must be yes, no or maybe.")
        return
    except NotFoundError:
        await update.message.reply_text("Appointment not found.")
        return
    await update.message.reply_text(f"Checked in {target_user_id}: {state}.")


@linked_users_only
async def cmd_roster(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /roster <appointment id> — target attendees with RSVP and check-in."""
    services: Services = context.bot_data["services"]
    if not services.visibility.has_permission(user.user_id, PERMISSION_CHECKIN):
        await update.message.reply_text("You are not allowed to do that.")
        return

    appointment_id = _parse_appointment_id(context.args or [])
    if appointment_id is None:
        await update.message.reply_text("Usage: /roster <appointment id>")
        return

    try:
        roster = services.responses.get_checkin_roster(appointment_id)
    except NotFoundError:
        await update.message.reply_text("Appointment not found.")
        return
    if not roster:
        await update.message.reply_text("Nobody is on the roster.")
        return

    appointment = services.appointment_db.get(appointment_id)
    lines = [f"*Roster for {escape_markdown(appointment.name, version=1)}:*\n"]
    for entry in roster:
        lines.append(
            f"{escape_markdown(entry.display_name, version=1)}: "
            f"RSVP {entry.response or '-'}, check-in {entry.checkin_state or '-'}"
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def cmd_link(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /link <user id> <telegram id> — connect a directory user to a chat.

    Allowed for ADMIN_CHAT_IDS and for linked users holding
    manage_appointments. Everyone else is silently ignored.
    """
    services: Services = context.bot_data["services"]
    tg_user = update.effective_user
    if tg_user is None:
        return
    if tg_user.id not in settings.ADMIN_CHAT_IDS:
        caller = services.directory.find_by_chat_id(tg_user.id)
        if caller is None or not services.visibility.has_permission(
            caller.user_id, PERMISSION_MANAGE_APPOINTMENTS,
        ):
            logger.warning("Unauthorized /link attempt from telegram id=%s", tg_user.id)
            return

    args = context.args or []
    try:
        user_id, chat_id = args[0], int(args[1])
    except (IndexError, ValueError):
        await update.message.reply_text("Usage: /link <user id> <telegram id>")
        return

    if services.directory.get_user(user_id) is None:
        await update.message.reply_text(f"Unknown user: {user_id}")
        return
    services.directory.set_chat_id(user_id, chat_id)
    await update.message.reply_text(f"Linked {user_id} to chat {chat_id}.")


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------


def build_app(
    services: Services | None = None,
    notifier: ReminderSink | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        services: Core services. Defaults to create_services() on DATABASE_PATH.
        notifier: Reminder sink. Defaults to TelegramReminderSink on the bot.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if services is None:
        from attendance.adapters.service_factory import create_services
        services = create_services()

    if notifier is None:
        from attendance.adapters.telegram_notifier import TelegramReminderSink
        notifier = TelegramReminderSink(app.bot, services.directory)

    app.bot_data["services"] = services

    app.add_handler(CommandHandler("streak", cmd_streak))
    app.add_handler(CommandHandler("recalc", cmd_recalc))
    app.add_handler(CommandHandler("leaders", cmd_leaders))
    app.add_handler(CommandHandler("recalcall", cmd_recalcall))
    app.add_handler(CommandHandler("rsvp", cmd_rsvp))
    app.add_handler(CommandHandler("checkin", cmd_checkin))
    app.add_handler(CommandHandler("roster", cmd_roster))
    app.add_handler(CommandHandler("link", cmd_link))

    _setup_reminder_job(app, services, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_reminder_job(
    app: Application,
    services: Services,
    notifier: ReminderSink,
) -> None:
    """Register the once-daily reminder job at REMINDER_HOUR local time."""
    scheduler = services.reminder_scheduler(notifier)
    tz = ZoneInfo(settings.TIMEZONE)
    run_time = dt_time(hour=settings.REMINDER_HOUR, minute=0, tzinfo=tz)

    async def _reminder_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        # "today" must be the local date of the configured timezone, not the host's
        await scheduler.run(now=datetime.now(tz).replace(tzinfo=None))

    app.job_queue.run_daily(
        _reminder_job_callback,
        time=run_time,
        name="attendance_reminders",
    )

    logger.info(
        "Reminder job scheduled at %02d:00 %s",
        settings.REMINDER_HOUR,
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting attendance bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
