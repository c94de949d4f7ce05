"""Error taxonomy shared by the services and adapters."""

from __future__ import annotations


class AttendanceError(Exception):
    """Base class for all attendance errors."""


class NotFoundError(AttendanceError):
    """An appointment or response referenced by ID does not exist."""


class InvalidInputError(AttendanceError, ValueError):
    """An RSVP or check-in value outside {yes, no, maybe}."""


class PermissionDeniedError(AttendanceError):
    """The user may not act on this appointment."""


class NotificationDeliveryError(AttendanceError):
    """Raised by a ReminderSink when a reminder cannot be delivered."""
