"""Service factory — wires the SQLite stores into the core services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from attendance.core.config_service import ConfigService
from attendance.core.reminders import ReminderScheduler
from attendance.core.responses import ResponseService
from attendance.core.streaks import StreakEngine
from attendance.core.visibility import VisibilityResolver
from attendance.data.db import AppointmentDB, ConfigDB, ReminderLogDB, ResponseDB, StreakDB
from attendance.data.directory_db import DirectoryDB

if TYPE_CHECKING:
    from attendance.config import Settings
    from attendance.ports.notification_port import ReminderSink


@dataclass
class Services:
    """Everything a host needs, sharing one database."""

    directory: DirectoryDB
    appointment_db: AppointmentDB
    response_db: ResponseDB
    reminder_log_db: ReminderLogDB
    streak_db: StreakDB
    config: ConfigService
    visibility: VisibilityResolver
    streaks: StreakEngine
    responses: ResponseService

    def reminder_scheduler(self, notifier: ReminderSink) -> ReminderScheduler:
        return ReminderScheduler(
            appointments=self.appointment_db,
            responses=self.response_db,
            reminder_logs=self.reminder_log_db,
            visibility=self.visibility,
            notifier=notifier,
            config=self.config,
        )


def create_services(
    db_path: str | None = None,
    defaults: Settings | None = None,
    teams_enabled: bool | None = None,
) -> Services:
    """Build all stores and services on one SQLite file.

    Args:
        db_path: SQLite path. Defaults to settings.DATABASE_PATH.
        defaults: Settings used for app values not stored yet.
        teams_enabled: Whether team audiences resolve. Defaults to settings.
    """
    directory = DirectoryDB(db_path=db_path, teams_enabled=teams_enabled)
    appointment_db = AppointmentDB(db_path=db_path)
    response_db = ResponseDB(db_path=db_path)
    reminder_log_db = ReminderLogDB(db_path=db_path)
    streak_db = StreakDB(db_path=db_path)
    config = ConfigService(ConfigDB(db_path=db_path), defaults=defaults)
    visibility = VisibilityResolver(directory, config)

    return Services(
        directory=directory,
        appointment_db=appointment_db,
        response_db=response_db,
        reminder_log_db=reminder_log_db,
        streak_db=streak_db,
        config=config,
        visibility=visibility,
        streaks=StreakEngine(appointment_db, response_db, streak_db, visibility, directory),
        responses=ResponseService(appointment_db, response_db, visibility, directory),
    )
