"""Tests for attendance.core.reminders — window, throttling and ReminderScheduler."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from attendance.core.reminders import is_reminder_due, reminder_window
from attendance.data.models import AttendanceResponse, AudienceSpec, ReminderLog
from attendance.errors import NotificationDeliveryError

NOW = datetime(2026, 3, 10, 9, 0)


def _upcoming(services, name="Rehearsal", days_ahead=2, audience=None):
    start = NOW + timedelta(days=days_ahead)
    return services.appointment_db.add_appointment(
        name=name,
        start_datetime=start,
        end_datetime=start + timedelta(hours=2),
        created_by="admin",
        audience=audience,
    )


@pytest.fixture
def notifier():
    sink = AsyncMock()
    sink.send_reminder = AsyncMock()
    return sink


@pytest.fixture
def enabled(services):
    """Services with reminders on, a 7 day window and remind-once throttling."""
    services.config.set_reminder_settings(enabled=True, reminder_days=7, reminder_frequency=0)
    services.directory.add_user("alice", "Alice", chat_id=1)
    services.directory.add_user("bob", "Bob", chat_id=2)
    return services


def _sent_to(notifier):
    return [c.args[0] for c in notifier.send_reminder.call_args_list]


class TestHelpers:
    def test_window_spans_whole_days(self):
        start, end = reminder_window(NOW, 7)
        assert start == datetime(2026, 3, 10, 0, 0, 0)
        assert end == datetime(2026, 3, 17, 23, 59, 59)

    def test_never_reminded_is_due(self):
        assert is_reminder_due(None, NOW, 0) is True

    def test_frequency_zero_reminds_once(self):
        assert is_reminder_due(NOW - timedelta(days=30), NOW, 0) is False

    @pytest.mark.parametrize("frequency,due", [(3, True), (5, True), (7, False)])
    def test_frequency_against_five_days_ago(self, frequency, due):
        assert is_reminder_due(NOW - timedelta(days=5), NOW, frequency) is due

    def test_partial_days_do_not_count(self):
        last = NOW - timedelta(days=2, hours=23)
        assert is_reminder_due(last, NOW, 3) is False


class TestReminderScheduler:
    @pytest.mark.asyncio
    async def test_disabled_is_noop(self, services, notifier):
        services.directory.add_user("alice", "Alice", chat_id=1)
        _upcoming(services)

        result = await services.reminder_scheduler(notifier).run(now=NOW)

        assert result.processed_appointments == 0
        notifier.send_reminder.assert_not_called()

    @pytest.mark.asyncio
    async def test_reminds_everyone_without_rsvp(self, enabled, notifier):
        appointment = _upcoming(enabled)

        result = await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert result.sent == 2
        assert sorted(_sent_to(notifier)) == ["alice", "bob"]
        notifier.send_reminder.assert_any_await(
            "alice", appointment.id, "Rehearsal", appointment.start_datetime,
        )
        latest = enabled.reminder_log_db.find_latest_for_user(appointment.id, "alice")
        assert latest.reminded_at == NOW

    @pytest.mark.asyncio
    async def test_any_rsvp_excludes_user(self, enabled, notifier):
        appointment = _upcoming(enabled)
        enabled.response_db.save(
            AttendanceResponse(appointment_id=appointment.id, user_id="alice", response="no")
        )

        await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert _sent_to(notifier) == ["bob"]

    @pytest.mark.asyncio
    async def test_checkin_without_rsvp_still_reminded(self, enabled, notifier):
        appointment = _upcoming(enabled)
        enabled.response_db.save(
            AttendanceResponse(appointment_id=appointment.id, user_id="alice", checkin_state="yes")
        )

        await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert sorted(_sent_to(notifier)) == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_frequency_zero_never_resends(self, enabled, notifier):
        appointment = _upcoming(enabled)
        enabled.reminder_log_db.insert(ReminderLog(appointment.id, "alice", NOW - timedelta(days=20)))

        result = await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert _sent_to(notifier) == ["bob"]
        assert result.skipped == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("frequency,expected", [(3, ["alice", "bob"]), (7, ["bob"])])
    async def test_frequency_uses_latest_log(self, enabled, notifier, frequency, expected):
        appointment = _upcoming(enabled)
        enabled.config.set_reminder_frequency(frequency)
        enabled.reminder_log_db.insert(ReminderLog(appointment.id, "alice", NOW - timedelta(days=12)))
        enabled.reminder_log_db.insert(ReminderLog(appointment.id, "alice", NOW - timedelta(days=5)))

        await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert sorted(_sent_to(notifier)) == expected

    @pytest.mark.asyncio
    async def test_second_run_same_day_sends_nothing(self, enabled, notifier):
        _upcoming(enabled)
        enabled.config.set_reminder_frequency(1)
        scheduler = enabled.reminder_scheduler(notifier)

        await scheduler.run(now=NOW)
        notifier.send_reminder.reset_mock()
        second = await scheduler.run(now=NOW + timedelta(hours=1))

        notifier.send_reminder.assert_not_called()
        assert second.skipped == 2

    @pytest.mark.asyncio
    async def test_failed_send_is_isolated_and_not_logged(self, enabled, notifier):
        appointment = _upcoming(enabled)

        async def send(user_id, *args):
            if user_id == "alice":
                raise NotificationDeliveryError("no chat")

        notifier.send_reminder.side_effect = send

        result = await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert result.failed == 1
        assert result.sent == 1
        assert enabled.reminder_log_db.find_latest_for_user(appointment.id, "alice") is None
        assert enabled.reminder_log_db.find_latest_for_user(appointment.id, "bob") is not None

    @pytest.mark.asyncio
    async def test_only_appointments_inside_window(self, enabled, notifier):
        _upcoming(enabled, "Too far", days_ahead=8)
        inside = _upcoming(enabled, "Soon", days_ahead=7)

        result = await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert result.processed_appointments == 1
        assert {c.args[1] for c in notifier.send_reminder.call_args_list} == {inside.id}

    @pytest.mark.asyncio
    async def test_restricted_audience(self, enabled, notifier):
        enabled.config.set_whitelisted_groups(["staff"])
        _upcoming(enabled, audience=AudienceSpec.of(users=["bob"]))

        await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert _sent_to(notifier) == ["bob"]

    @pytest.mark.asyncio
    async def test_restricted_audience_resolving_to_nobody(self, enabled, notifier):
        _upcoming(enabled, audience=AudienceSpec.of(groups=["nobody-here"]))

        result = await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert result.processed_appointments == 1
        assert result.sent == 0
        notifier.send_reminder.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancelled_appointment_skipped(self, enabled, notifier):
        appointment = _upcoming(enabled)
        enabled.appointment_db.delete_appointment(appointment.id)

        result = await enabled.reminder_scheduler(notifier).run(now=NOW)

        assert result.processed_appointments == 0
