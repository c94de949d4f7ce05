"""
Attendance — Centralized configuration.

Loads all settings from .env and validates required keys.
Values here are process-level defaults; admin-editable app values
(reminder window, whitelists, permissions) live in the app_config table
and are read through ConfigService.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from attendance/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram (notification sink + bot host)
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/attendance.db"

    # Telegram chats allowed to run /link before any chat is linked
    ADMIN_CHAT_IDS: list[int] = []

    # Daily reminder job
    REMINDER_HOUR: int = 9
    TIMEZONE: str = "Europe/Berlin"

    # Teams/circles are an optional directory feature
    TEAMS_ENABLED: bool = True

    # Defaults for app values not yet stored in app_config
    REMINDERS_ENABLED: bool = False
    REMINDER_DAYS: int = 7
    REMINDER_FREQUENCY: int = 0
    STREAKS_ENABLED: bool = True
    WHITELISTED_GROUPS: list[str] = []

    @field_validator("WHITELISTED_GROUPS", mode="before")
    @classmethod
    def parse_groups(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [g.strip() for g in v.split(",") if g.strip()]
        return []

    @field_validator("ADMIN_CHAT_IDS", mode="before")
    @classmethod
    def parse_chat_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(cid.strip()) for cid in v.split(",") if cid.strip()]
        return []

    @field_validator("REMINDER_HOUR", "REMINDER_DAYS", "REMINDER_FREQUENCY", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("TEAMS_ENABLED", "REMINDERS_ENABLED", "STREAKS_ENABLED", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/attendance.db"),
        ADMIN_CHAT_IDS=os.getenv("ADMIN_CHAT_IDS", ""),
        REMINDER_HOUR=os.getenv("REMINDER_HOUR", "9"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/Berlin"),
        TEAMS_ENABLED=os.getenv("TEAMS_ENABLED", "true"),
        REMINDERS_ENABLED=os.getenv("REMINDERS_ENABLED", "false"),
        REMINDER_DAYS=os.getenv("REMINDER_DAYS", "7"),
        REMINDER_FREQUENCY=os.getenv("REMINDER_FREQUENCY", "0"),
        STREAKS_ENABLED=os.getenv("STREAKS_ENABLED", "true"),
        WHITELISTED_GROUPS=os.getenv("WHITELISTED_GROUPS", ""),
    )


# Singleton — imported by all other modules as:
#   from attendance.config import settings
settings = _load_settings()
