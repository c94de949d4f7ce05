"""Tests for attendance.core.config_service — ConfigService."""

import pytest

from attendance.config import Settings
from attendance.core.config_service import ConfigService, PERMISSION_MANAGE_APPOINTMENTS
from attendance.data.db import ConfigDB


class TestDefaults:
    def test_falls_back_to_settings(self, tmp_db_path):
        defaults = Settings(
            TELEGRAM_BOT_TOKEN="x",
            REMINDERS_ENABLED=True,
            REMINDER_DAYS=3,
            REMINDER_FREQUENCY=2,
            WHITELISTED_GROUPS="staff, choir",
        )
        config = ConfigService(ConfigDB(db_path=tmp_db_path), defaults=defaults)
        assert config.are_reminders_enabled() is True
        assert config.get_reminder_days() == 3
        assert config.get_reminder_frequency() == 2
        assert config.get_whitelisted_groups() == ["staff", "choir"]

    def test_stored_values_override_defaults(self, config_service):
        config_service.set_reminders_enabled(True)
        assert config_service.are_reminders_enabled() is True
        config_service.set_reminders_enabled(False)
        assert config_service.are_reminders_enabled() is False


class TestReminderSettings:
    @pytest.mark.parametrize("given,expected", [(0, 1), (1, 1), (14, 14), (30, 30), (99, 30)])
    def test_reminder_days_clamped(self, config_service, given, expected):
        config_service.set_reminder_days(given)
        assert config_service.get_reminder_days() == expected

    @pytest.mark.parametrize("given,expected", [(-5, 0), (0, 0), (7, 7), (31, 30)])
    def test_reminder_frequency_clamped(self, config_service, given, expected):
        config_service.set_reminder_frequency(given)
        assert config_service.get_reminder_frequency() == expected

    def test_set_and_get_all(self, config_service):
        config_service.set_reminder_settings(enabled=True, reminder_days=5, reminder_frequency=2)
        assert config_service.get_reminder_settings() == {
            "enabled": True, "reminderDays": 5, "reminderFrequency": 2,
        }

    def test_partial_update_keeps_other_values(self, config_service):
        config_service.set_reminder_settings(reminder_days=4)
        config_service.set_reminder_settings(reminder_frequency=1)
        assert config_service.get_reminder_days() == 4
        assert config_service.get_reminder_frequency() == 1

    def test_non_integer_value_uses_default(self, config_service, tmp_db_path):
        ConfigDB(db_path=tmp_db_path).set_value("reminder_days", "soon")
        assert config_service.get_reminder_days() == 7


class TestWhitelist:
    def test_empty_whitelist_allows_all(self, config_service):
        assert config_service.is_group_allowed("anything") is True

    def test_is_group_allowed_case_insensitive(self, config_service):
        config_service.set_whitelisted_groups(["Staff"])
        assert config_service.is_group_allowed("staff") is True
        assert config_service.is_group_allowed("choir") is False


class TestPermissionsAndStreaks:
    def test_permission_roles_round_trip(self, config_service):
        assert config_service.get_permission_roles(PERMISSION_MANAGE_APPOINTMENTS) == []
        config_service.set_permission_roles(PERMISSION_MANAGE_APPOINTMENTS, ["admins"])
        assert config_service.get_permission_roles(PERMISSION_MANAGE_APPOINTMENTS) == ["admins"]

    def test_unknown_permission_rejected(self, config_service):
        with pytest.raises(ValueError, match="Unknown permission"):
            config_service.set_permission_roles("launch_rockets", ["admins"])

    def test_streaks_enabled_toggle(self, config_service):
        assert config_service.are_streaks_enabled() is True
        config_service.set_streaks_enabled(False)
        assert config_service.are_streaks_enabled() is False
