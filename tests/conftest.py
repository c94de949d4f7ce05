"""Shared test fixtures and configuration.

Sets up fake environment variables so attendance.config doesn't sys.exit(),
and provides temp-file SQLite fixtures for every store.
"""

import os

# Patch env vars BEFORE any attendance imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("ADMIN_CHAT_IDS", "")
os.environ.setdefault("TEAMS_ENABLED", "true")
os.environ.setdefault("REMINDERS_ENABLED", "false")
os.environ.setdefault("REMINDER_DAYS", "7")
os.environ.setdefault("REMINDER_FREQUENCY", "0")
os.environ.setdefault("STREAKS_ENABLED", "true")
os.environ.setdefault("WHITELISTED_GROUPS", "")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_attendance.db")


@pytest.fixture
def directory(tmp_db_path):
    from attendance.data.directory_db import DirectoryDB
    return DirectoryDB(db_path=tmp_db_path, teams_enabled=True)


@pytest.fixture
def appointment_db(tmp_db_path):
    from attendance.data.db import AppointmentDB
    return AppointmentDB(db_path=tmp_db_path)


@pytest.fixture
def response_db(tmp_db_path):
    from attendance.data.db import ResponseDB
    return ResponseDB(db_path=tmp_db_path)


@pytest.fixture
def reminder_log_db(tmp_db_path):
    from attendance.data.db import ReminderLogDB
    return ReminderLogDB(db_path=tmp_db_path)


@pytest.fixture
def streak_db(tmp_db_path):
    from attendance.data.db import StreakDB
    return StreakDB(db_path=tmp_db_path)


@pytest.fixture
def config_service(tmp_db_path):
    from attendance.core.config_service import ConfigService
    from attendance.data.db import ConfigDB
    return ConfigService(ConfigDB(db_path=tmp_db_path))


@pytest.fixture
def visibility(directory, config_service):
    from attendance.core.visibility import VisibilityResolver
    return VisibilityResolver(directory, config_service)


@pytest.fixture
def services(tmp_db_path):
    """All stores and services wired on one temp database."""
    from attendance.adapters.service_factory import create_services
    return create_services(db_path=tmp_db_path, teams_enabled=True)
