"""
Attendance — SQLite storage.

Appointments, responses, reminder logs, cached streaks and app config share
one SQLite file. Audience lists are stored as JSON columns and decoded into
an AudienceSpec here, never inside the core.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from attendance.data.models import (
    Appointment,
    AttendanceResponse,
    AudienceSpec,
    ReminderLog,
    Streak,
)

logger = logging.getLogger(__name__)

# SQLite's default host-parameter limit is 999 on older builds
_IN_CHUNK = 500


def _to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(sep=" ", timespec="seconds")


def _from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _decode_list(value: str | None) -> list[str]:
    if not value:
        return []
    try:
        decoded = json.loads(value)
    except ValueError:
        logger.warning("Ignoring malformed audience column: %r", value)
        return []
    if not isinstance(decoded, list):
        return []
    return [str(v) for v in decoded]


def _encode_list(values: frozenset[str]) -> str | None:
    return json.dumps(sorted(values)) if values else None


def _resolve_path(db_path: str | None) -> str:
    if db_path is None:
        from attendance.config import settings
        db_path = settings.DATABASE_PATH
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return db_path


class AppointmentDB:
    """SQLite-backed storage for appointments."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS appointments (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    name            TEXT    NOT NULL,
                    description     TEXT    NOT NULL DEFAULT '',
                    start_datetime  TEXT    NOT NULL,
                    end_datetime    TEXT    NOT NULL,
                    created_by      TEXT    NOT NULL,
                    visible_users   TEXT,
                    visible_groups  TEXT,
                    visible_teams   TEXT,
                    is_active       INTEGER NOT NULL DEFAULT 1,
                    created_at      TEXT    NOT NULL,
                    updated_at      TEXT    NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_appointments_start "
                "ON appointments (start_datetime)"
            )
        logger.debug("Appointments table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_appointment(row: sqlite3.Row) -> Appointment:
        return Appointment(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            start_datetime=_from_db(row["start_datetime"]),
            end_datetime=_from_db(row["end_datetime"]),
            created_by=row["created_by"],
            audience=AudienceSpec.of(
                users=_decode_list(row["visible_users"]),
                groups=_decode_list(row["visible_groups"]),
                teams=_decode_list(row["visible_teams"]),
            ),
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_appointment(
        self,
        name: str,
        start_datetime: datetime,
        end_datetime: datetime,
        created_by: str,
        description: str = "",
        audience: AudienceSpec | None = None,
    ) -> Appointment:
        """Insert a new active appointment."""
        if start_datetime.tzinfo is not None or end_datetime.tzinfo is not None:
            raise ValueError("Appointment datetimes must be naive local time")
        if end_datetime < start_datetime:
            raise ValueError("Appointment cannot end before it starts")
        audience = audience or AudienceSpec()
        now = datetime.now().isoformat(sep=" ", timespec="seconds")

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO appointments
                    (name, description, start_datetime, end_datetime, created_by,
                     visible_users, visible_groups, visible_teams,
                     is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (
                    name, description, _to_db(start_datetime), _to_db(end_datetime),
                    created_by,
                    _encode_list(audience.users),
                    _encode_list(audience.groups),
                    _encode_list(audience.teams),
                    now, now,
                ),
            )
            appointment_id = cursor.lastrowid

        logger.info("Appointment added: #%d '%s' at %s", appointment_id, name, start_datetime)
        return Appointment(
            id=appointment_id,
            name=name,
            description=description,
            start_datetime=start_datetime,
            end_datetime=end_datetime,
            created_by=created_by,
            audience=audience,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    def update_audience(self, appointment_id: int, audience: AudienceSpec) -> None:
        """Replace the audience lists of an appointment."""
        now = datetime.now().isoformat(sep=" ", timespec="seconds")
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE appointments
                   SET visible_users = ?, visible_groups = ?, visible_teams = ?,
                       updated_at = ?
                 WHERE id = ?
                """,
                (
                    _encode_list(audience.users),
                    _encode_list(audience.groups),
                    _encode_list(audience.teams),
                    now, appointment_id,
                ),
            )
        logger.info("Appointment #%d audience updated", appointment_id)

    def get(self, appointment_id: int) -> Appointment | None:
        """Fetch a single appointment by ID, active or not."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM appointments WHERE id = ?", (appointment_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_appointment(row)

    def find_past(self, now: datetime | None = None) -> list[Appointment]:
        """Active appointments that ended before now. Newest first."""
        if now is None:
            now = datetime.now()
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM appointments
                 WHERE is_active = 1 AND end_datetime < ?
                 ORDER BY start_datetime DESC
                """,
                (_to_db(now),),
            ).fetchall()
        return [self._row_to_appointment(r) for r in rows]

    def find_starting_between(self, start: datetime, end: datetime) -> list[Appointment]:
        """Active appointments whose start falls in [start, end]."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM appointments
                 WHERE is_active = 1 AND start_datetime >= ? AND start_datetime <= ?
                 ORDER BY start_datetime
                """,
                (_to_db(start), _to_db(end)),
            ).fetchall()
        return [self._row_to_appointment(r) for r in rows]

    def delete_appointment(self, appointment_id: int) -> bool:
        """Soft-delete an appointment (set is_active = False)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE appointments SET is_active = 0 WHERE id = ? AND is_active = 1",
                (appointment_id,),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Appointment #%d soft-deleted", appointment_id)
        return deleted


class ResponseDB:
    """SQLite-backed storage for RSVP and check-in rows."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS responses (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    appointment_id   INTEGER NOT NULL,
                    user_id          TEXT    NOT NULL,
                    response         TEXT,
                    comment          TEXT    NOT NULL DEFAULT '',
                    responded_at     TEXT,
                    checkin_state    TEXT,
                    checkin_comment  TEXT,
                    checkin_by       TEXT,
                    checkin_at       TEXT,
                    UNIQUE (appointment_id, user_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_responses_user ON responses (user_id)"
            )
        logger.debug("Responses table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_response(row: sqlite3.Row) -> AttendanceResponse:
        return AttendanceResponse(
            id=row["id"],
            appointment_id=row["appointment_id"],
            user_id=row["user_id"],
            response=row["response"],
            comment=row["comment"],
            responded_at=_from_db(row["responded_at"]),
            checkin_state=row["checkin_state"],
            checkin_comment=row["checkin_comment"],
            checkin_by=row["checkin_by"],
            checkin_at=_from_db(row["checkin_at"]),
        )

    def find_by_appointment_and_user(
        self, appointment_id: int, user_id: str,
    ) -> AttendanceResponse | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM responses WHERE appointment_id = ? AND user_id = ?",
                (appointment_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_response(row)

    def find_by_appointment(self, appointment_id: int) -> list[AttendanceResponse]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM responses WHERE appointment_id = ? ORDER BY id",
                (appointment_id,),
            ).fetchall()
        return [self._row_to_response(r) for r in rows]

    def find_by_user(self, user_id: str) -> list[AttendanceResponse]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM responses WHERE user_id = ? ORDER BY id",
                (user_id,),
            ).fetchall()
        return [self._row_to_response(r) for r in rows]

    def find_appointments_with_checkin(self, appointment_ids: list[int]) -> set[int]:
        """Which of these appointments have at least one check-in recorded."""
        ids = list(dict.fromkeys(appointment_ids))
        found: set[int] = set()
        if not ids:
            return found

        with self._connect() as conn:
            for i in range(0, len(ids), _IN_CHUNK):
                chunk = ids[i:i + _IN_CHUNK]
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(
                    f"""
                    SELECT DISTINCT appointment_id FROM responses
                     WHERE appointment_id IN ({placeholders})
                       AND checkin_state IS NOT NULL AND checkin_state != ''
                    """,
                    chunk,
                ).fetchall()
                found.update(r["appointment_id"] for r in rows)
        return found

    def list_response_user_ids(self) -> list[str]:
        """Every user that has at least one response row."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT user_id FROM responses ORDER BY user_id"
            ).fetchall()
        return [r["user_id"] for r in rows]

    def save(self, response: AttendanceResponse) -> AttendanceResponse:
        """Insert a new row or update the existing one in place."""
        values = (
            response.response,
            response.comment or "",
            _to_db(response.responded_at),
            response.checkin_state,
            response.checkin_comment,
            response.checkin_by,
            _to_db(response.checkin_at),
        )
        with self._connect() as conn:
            if response.id is None:
                cursor = conn.execute(
                    """
                    INSERT INTO responses
                        (response, comment, responded_at, checkin_state,
                         checkin_comment, checkin_by, checkin_at,
                         appointment_id, user_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    values + (response.appointment_id, response.user_id),
                )
                response.id = cursor.lastrowid
            else:
                conn.execute(
                    """
                    UPDATE responses
                       SET response = ?, comment = ?, responded_at = ?,
                           checkin_state = ?, checkin_comment = ?,
                           checkin_by = ?, checkin_at = ?
                     WHERE id = ?
                    """,
                    values + (response.id,),
                )
        logger.debug(
            "Response saved: appointment #%d user %s",
            response.appointment_id, response.user_id,
        )
        return response


class ReminderLogDB:
    """Append-only log of sent reminders."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminder_log (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    appointment_id  INTEGER NOT NULL,
                    user_id         TEXT    NOT NULL,
                    reminded_at     TEXT    NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reminder_log_appointment "
                "ON reminder_log (appointment_id)"
            )
        logger.debug("Reminder log table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> ReminderLog:
        return ReminderLog(
            id=row["id"],
            appointment_id=row["appointment_id"],
            user_id=row["user_id"],
            reminded_at=_from_db(row["reminded_at"]),
        )

    def find_latest_for_user(self, appointment_id: int, user_id: str) -> ReminderLog | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM reminder_log
                 WHERE appointment_id = ? AND user_id = ?
                 ORDER BY reminded_at DESC, id DESC
                 LIMIT 1
                """,
                (appointment_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_log(row)

    def find_by_appointment(self, appointment_id: int) -> list[ReminderLog]:
        """All reminders for an appointment, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reminder_log
                 WHERE appointment_id = ?
                 ORDER BY reminded_at DESC, id DESC
                """,
                (appointment_id,),
            ).fetchall()
        return [self._row_to_log(r) for r in rows]

    def insert(self, log: ReminderLog) -> ReminderLog:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO reminder_log (appointment_id, user_id, reminded_at) VALUES (?, ?, ?)",
                (log.appointment_id, log.user_id, _to_db(log.reminded_at)),
            )
            log.id = cursor.lastrowid
        return log

    def delete_older_than(self, before: datetime) -> int:
        """Prune old reminder rows. Returns the number deleted."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM reminder_log WHERE reminded_at < ?", (_to_db(before),),
            )
        if cursor.rowcount:
            logger.info("Pruned %d reminder log rows before %s", cursor.rowcount, before)
        return cursor.rowcount


class StreakDB:
    """One cached streak row per user."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS streaks (
                    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id              TEXT    NOT NULL UNIQUE,
                    current_streak       INTEGER NOT NULL DEFAULT 0,
                    longest_streak       INTEGER NOT NULL DEFAULT 0,
                    streak_start_date    TEXT,
                    longest_streak_date  TEXT,
                    last_calculated_at   TEXT
                )
            """)
        logger.debug("Streaks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_streak(row: sqlite3.Row) -> Streak:
        return Streak(
            user_id=row["user_id"],
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            streak_start_date=_from_db(row["streak_start_date"]),
            longest_streak_date=_from_db(row["longest_streak_date"]),
            last_calculated_at=_from_db(row["last_calculated_at"]),
        )

    def find_by_user(self, user_id: str) -> Streak | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM streaks WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_streak(row)

    def find_or_create(self, user_id: str) -> Streak:
        """Return the user's streak, inserting a zero-valued row on first access."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO streaks (user_id, current_streak, longest_streak) "
                "VALUES (?, 0, 0)",
                (user_id,),
            )
            row = conn.execute(
                "SELECT * FROM streaks WHERE user_id = ?", (user_id,),
            ).fetchone()
        return self._row_to_streak(row)

    def upsert(self, streak: Streak) -> Streak:
        """Overwrite every field of the user's streak row."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO streaks
                    (user_id, current_streak, longest_streak, streak_start_date,
                     longest_streak_date, last_calculated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET
                    current_streak      = excluded.current_streak,
                    longest_streak      = excluded.longest_streak,
                    streak_start_date   = excluded.streak_start_date,
                    longest_streak_date = excluded.longest_streak_date,
                    last_calculated_at  = excluded.last_calculated_at
                """,
                (
                    streak.user_id,
                    streak.current_streak,
                    streak.longest_streak,
                    _to_db(streak.streak_start_date),
                    _to_db(streak.longest_streak_date),
                    _to_db(streak.last_calculated_at),
                ),
            )
        return streak

    def find_top(self, limit: int = 10) -> list[Streak]:
        """Users with an active streak, longest current streak first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM streaks
                 WHERE current_streak > 0
                 ORDER BY current_streak DESC, id ASC
                 LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._row_to_streak(r) for r in rows]


class ConfigDB:
    """Key/value storage for admin-editable app settings."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS app_config (
                    config_key    TEXT PRIMARY KEY,
                    config_value  TEXT NOT NULL
                )
            """)
        logger.debug("App config table initialized at %s", self._db_path)

    def get_value(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT config_value FROM app_config WHERE config_key = ?", (key,),
            ).fetchone()
        return None if row is None else row["config_value"]

    def set_value(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO app_config (config_key, config_value) VALUES (?, ?)
                ON CONFLICT (config_key) DO UPDATE SET config_value = excluded.config_value
                """,
                (key, value),
            )
        logger.info("App config %s set to %s", key, value)
