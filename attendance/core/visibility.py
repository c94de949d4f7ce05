"""
Attendance — Visibility Resolver.

Decides who an appointment is meant for. Two questions are kept apart on
purpose:

- is_target_attendee: is the user part of the appointment's audience?
  Streaks, check-in rosters and reminders use only this.
- can_user_see_appointment: may the user view it? Adds the
  manage_appointments bypass on top, so admins see everything without
  ever being counted as attendees.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from attendance.core.config_service import PERMISSION_MANAGE_APPOINTMENTS

if TYPE_CHECKING:
    from attendance.core.config_service import ConfigService
    from attendance.data.models import Appointment
    from attendance.ports.directory_port import DirectoryPort

logger = logging.getLogger(__name__)


class VisibilityResolver:
    """Audience resolution on top of the directory."""

    def __init__(self, directory: DirectoryPort, config: ConfigService) -> None:
        self._directory = directory
        self._config = config

    def is_target_attendee(self, appointment: Appointment, user_id: str) -> bool:
        """True if the appointment's audience includes the user.

        An open audience includes everyone, even ids the directory does not
        know. Unknown users have no group or team memberships.
        """
        audience = appointment.audience
        if audience.is_open:
            return True

        if user_id in audience.users:
            return True

        if audience.groups:
            if self._directory.get_user_group_ids(user_id) & audience.groups:
                return True

        for team_id in audience.teams:
            if user_id in self._directory.get_team_members(team_id):
                return True

        return False

    def can_user_see_appointment(self, appointment: Appointment, user_id: str) -> bool:
        """Admin bypass first, then the target-attendee check."""
        if self.has_permission(user_id, PERMISSION_MANAGE_APPOINTMENTS):
            return True
        return self.is_target_attendee(appointment, user_id)

    def filter_visible_appointments(
        self, appointments: Iterable[Appointment], user_id: str,
    ) -> list[Appointment]:
        return [a for a in appointments if self.can_user_see_appointment(a, user_id)]

    def has_restricted_visibility(self, appointment: Appointment) -> bool:
        return not appointment.audience.is_open

    def has_permission(self, user_id: str, permission: str) -> bool:
        """Group-based permission. No configured roles grants it to everyone."""
        roles = self._config.get_permission_roles(permission)
        if not roles:
            return True
        if self._directory.get_user(user_id) is None:
            return False
        return bool(self._directory.get_user_group_ids(user_id) & set(roles))

    def expand_audience(self, appointment: Appointment) -> set[str]:
        """Every target attendee of the appointment, for bulk fan-out.

        Restricted audiences resolve exactly as listed; the global group
        whitelist only narrows open audiences.
        """
        audience = appointment.audience

        if not audience.is_open:
            user_ids: set[str] = {
                uid for uid in audience.users if self._directory.get_user(uid) is not None
            }
            for group_id in audience.groups:
                user_ids.update(self._directory.get_group_members(group_id))
            for team_id in audience.teams:
                user_ids.update(self._directory.get_team_members(team_id))

            if not user_ids:
                logger.debug(
                    "Appointment #%d has a restricted audience with no resolvable members",
                    appointment.id,
                )
            return user_ids

        whitelisted = self._config.get_whitelisted_groups()
        if whitelisted:
            user_ids = set()
            for group_id in whitelisted:
                user_ids.update(self._directory.get_group_members(group_id))
            return user_ids

        return {u.user_id for u in self._directory.list_all_users("")}
