"""
Attendance — App Configuration.

Typed access to admin-editable app values stored in the app_config table.
Values never written fall back to the process defaults in Settings.
Booleans are stored as 'yes'/'no', lists as JSON.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from attendance.config import Settings
    from attendance.data.db import ConfigDB

logger = logging.getLogger(__name__)

PERMISSION_MANAGE_APPOINTMENTS = "manage_appointments"
PERMISSION_CHECKIN = "checkin"
PERMISSION_SEE_RESPONSE_OVERVIEW = "see_response_overview"
PERMISSION_SEE_COMMENTS = "see_comments"

PERMISSIONS = (
    PERMISSION_MANAGE_APPOINTMENTS,
    PERMISSION_CHECKIN,
    PERMISSION_SEE_RESPONSE_OVERVIEW,
    PERMISSION_SEE_COMMENTS,
)

MIN_REMINDER_DAYS, MAX_REMINDER_DAYS = 1, 30
MIN_REMINDER_FREQUENCY, MAX_REMINDER_FREQUENCY = 0, 30


class ConfigService:
    """Reads and writes app values with clamping and defaults."""

    def __init__(self, db: ConfigDB, defaults: Settings | None = None) -> None:
        if defaults is None:
            from attendance.config import settings
            defaults = settings
        self._db = db
        self._defaults = defaults

    # -- helpers -----------------------------------------------------------

    def _get_bool(self, key: str, default: bool) -> bool:
        raw = self._db.get_value(key)
        if raw is None:
            return default
        return raw == "yes"

    def _set_bool(self, key: str, value: bool) -> None:
        self._db.set_value(key, "yes" if value else "no")

    def _get_int(self, key: str, default: int) -> int:
        raw = self._db.get_value(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("App config %s has non-integer value %r, using %d", key, raw, default)
            return default

    def _get_list(self, key: str, default: list[str]) -> list[str]:
        raw = self._db.get_value(key)
        if raw is None:
            return list(default)
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("App config %s is not valid JSON: %r", key, raw)
            return []
        return [str(v) for v in decoded] if isinstance(decoded, list) else []

    # -- whitelist ---------------------------------------------------------

    def get_whitelisted_groups(self) -> list[str]:
        """Global group whitelist. Empty means every group is allowed."""
        return self._get_list("whitelisted_groups", self._defaults.WHITELISTED_GROUPS)

    def set_whitelisted_groups(self, groups: list[str]) -> None:
        self._db.set_value("whitelisted_groups", json.dumps(list(groups)))

    def is_group_allowed(self, group_id: str) -> bool:
        whitelisted = self.get_whitelisted_groups()
        if not whitelisted:
            return True
        return group_id.lower() in {g.lower() for g in whitelisted}

    # -- reminders ---------------------------------------------------------

    def are_reminders_enabled(self) -> bool:
        return self._get_bool("reminders_enabled", self._defaults.REMINDERS_ENABLED)

    def set_reminders_enabled(self, enabled: bool) -> None:
        self._set_bool("reminders_enabled", enabled)

    def get_reminder_days(self) -> int:
        days = self._get_int("reminder_days", self._defaults.REMINDER_DAYS)
        return max(MIN_REMINDER_DAYS, min(MAX_REMINDER_DAYS, days))

    def set_reminder_days(self, days: int) -> None:
        days = max(MIN_REMINDER_DAYS, min(MAX_REMINDER_DAYS, days))
        self._db.set_value("reminder_days", str(days))

    def get_reminder_frequency(self) -> int:
        """0 = remind once only, N = re-remind every N days."""
        frequency = self._get_int("reminder_frequency", self._defaults.REMINDER_FREQUENCY)
        return max(MIN_REMINDER_FREQUENCY, min(MAX_REMINDER_FREQUENCY, frequency))

    def set_reminder_frequency(self, frequency: int) -> None:
        frequency = max(MIN_REMINDER_FREQUENCY, min(MAX_REMINDER_FREQUENCY, frequency))
        self._db.set_value("reminder_frequency", str(frequency))

    def get_reminder_settings(self) -> dict:
        return {
            "enabled": self.are_reminders_enabled(),
            "reminderDays": self.get_reminder_days(),
            "reminderFrequency": self.get_reminder_frequency(),
        }

    def set_reminder_settings(
        self,
        enabled: bool | None = None,
        reminder_days: int | None = None,
        reminder_frequency: int | None = None,
    ) -> None:
        if enabled is not None:
            self.set_reminders_enabled(enabled)
        if reminder_days is not None:
            self.set_reminder_days(reminder_days)
        if reminder_frequency is not None:
            self.set_reminder_frequency(reminder_frequency)

    # -- streaks -----------------------------------------------------------

    def are_streaks_enabled(self) -> bool:
        return self._get_bool("streaks_enabled", self._defaults.STREAKS_ENABLED)

    def set_streaks_enabled(self, enabled: bool) -> None:
        self._set_bool("streaks_enabled", enabled)

    # -- permissions -------------------------------------------------------

    def get_permission_roles(self, permission: str) -> list[str]:
        """Groups holding a permission. Empty means everyone holds it."""
        return self._get_list(f"permission_{permission}", [])

    def set_permission_roles(self, permission: str, roles: list[str]) -> None:
        if permission not in PERMISSIONS:
            raise ValueError(f"Unknown permission: {permission!r}")
        self._db.set_value(f"permission_{permission}", json.dumps(list(roles)))
