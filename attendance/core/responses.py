"""
Attendance — RSVPs and Check-ins.

Records a user's RSVP and an operator's check-in for an appointment. Both
write the same (appointment, user) row; whichever happens first creates it.
Also builds the check-in roster, which lists true target attendees only.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from attendance.data.models import VALID_RESPONSES, AttendanceResponse, RosterEntry
from attendance.errors import InvalidInputError, NotFoundError, PermissionDeniedError

if TYPE_CHECKING:
    from attendance.core.visibility import VisibilityResolver
    from attendance.data.models import Appointment
    from attendance.ports.directory_port import DirectoryPort
    from attendance.ports.storage_port import AppointmentStore, ResponseStore

logger = logging.getLogger(__name__)


def validate_response(value: str | None, allow_none: bool = False) -> None:
    """Raise InvalidInputError unless value is yes/no/maybe (or None if allowed)."""
    if value is None and allow_none:
        return
    if value not in VALID_RESPONSES:
        raise InvalidInputError(
            f"Invalid response {value!r}. Must be yes, no, or maybe."
        )


class ResponseService:
    """RSVP submission, check-in and roster building."""

    def __init__(
        self,
        appointments: AppointmentStore,
        responses: ResponseStore,
        visibility: VisibilityResolver,
        directory: DirectoryPort,
    ) -> None:
        self._appointments = appointments
        self._responses = responses
        self._visibility = visibility
        self._directory = directory

    def _get_active_appointment(self, appointment_id: int) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None or not appointment.is_active:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def get_user_response(self, appointment_id: int, user_id: str) -> AttendanceResponse | None:
        return self._responses.find_by_appointment_and_user(appointment_id, user_id)

    def submit_response(
        self,
        appointment_id: int,
        user_id: str,
        response: str,
        comment: str = "",
        now: datetime | None = None,
    ) -> AttendanceResponse:
        """Create or update the user's RSVP."""
        validate_response(response)
        appointment = self._get_active_appointment(appointment_id)
        if not self._visibility.can_user_see_appointment(appointment, user_id):
            raise PermissionDeniedError(
                f"User {user_id} cannot respond to appointment {appointment_id}"
            )

        row = self._responses.find_by_appointment_and_user(appointment_id, user_id)
        if row is None:
            row = AttendanceResponse(appointment_id=appointment_id, user_id=user_id)

        row.response = response
        row.comment = comment
        row.responded_at = now or datetime.now()
        saved = self._responses.save(row)
        logger.info("RSVP %s by %s for appointment #%d", response, user_id, appointment_id)
        return saved

    def check_in(
        self,
        appointment_id: int,
        target_user_id: str,
        state: str | None,
        comment: str | None,
        operator_id: str,
        now: datetime | None = None,
    ) -> AttendanceResponse:
        """Record an operator's check-in outcome for a user.

        state None keeps the existing check-in state and only stamps the
        operator and time; comment None keeps the existing comment.
        """
        validate_response(state, allow_none=True)
        self._get_active_appointment(appointment_id)

        row = self._responses.find_by_appointment_and_user(appointment_id, target_user_id)
        if row is None:
            row = AttendanceResponse(appointment_id=appointment_id, user_id=target_user_id)

        if state is not None:
            row.checkin_state = state
        if comment is not None:
            row.checkin_comment = comment
        row.checkin_by = operator_id
        row.checkin_at = now or datetime.now()
        saved = self._responses.save(row)
        logger.info(
            "Check-in %s for %s on appointment #%d by %s",
            state, target_user_id, appointment_id, operator_id,
        )
        return saved

    def get_checkin_roster(self, appointment_id: int) -> list[RosterEntry]:
        """Target attendees with their RSVP and check-in fields, by display name."""
        appointment = self._get_active_appointment(appointment_id)
        by_user = {r.user_id: r for r in self._responses.find_by_appointment(appointment_id)}

        roster = []
        for user_id in self._visibility.expand_audience(appointment):
            if not self._visibility.is_target_attendee(appointment, user_id):
                continue
            user = self._directory.get_user(user_id)
            entry = RosterEntry(
                user_id=user_id,
                display_name=user.display_name if user else user_id,
            )
            row = by_user.get(user_id)
            if row is not None:
                entry.response = row.response
                entry.comment = row.comment
                entry.checkin_state = row.checkin_state
                entry.checkin_comment = row.checkin_comment
                entry.checkin_by = row.checkin_by
                entry.checkin_at = row.checkin_at
            roster.append(entry)

        roster.sort(key=lambda e: (e.display_name.lower(), e.user_id))
        return roster
