"""
Attendance — User Directory.

SQLite-backed directory of users, groups and teams. The core only reads it
through DirectoryPort; the write helpers exist to seed and administer it.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from attendance.data.models import User

logger = logging.getLogger(__name__)


class DirectoryDB:
    """Users, groups and teams (circles) with their memberships."""

    def __init__(self, db_path: str | None = None, teams_enabled: bool | None = None) -> None:
        if db_path is None or teams_enabled is None:
            from attendance.config import settings
            if db_path is None:
                db_path = settings.DATABASE_PATH
            if teams_enabled is None:
                teams_enabled = settings.TEAMS_ENABLED

        self._db_path = db_path
        self._teams_enabled = teams_enabled
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id       TEXT PRIMARY KEY,
                    display_name  TEXT NOT NULL,
                    chat_id       INTEGER,
                    created_at    TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS group_members (
                    group_id  TEXT NOT NULL,
                    user_id   TEXT NOT NULL,
                    PRIMARY KEY (group_id, user_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS team_members (
                    team_id  TEXT NOT NULL,
                    user_id  TEXT NOT NULL,
                    PRIMARY KEY (team_id, user_id)
                )
            """)
        logger.debug("Directory tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            user_id=row["user_id"],
            display_name=row["display_name"],
            chat_id=row["chat_id"],
            created_at=row["created_at"],
        )

    def add_user(
        self, user_id: str, display_name: str, chat_id: int | None = None,
    ) -> User:
        """Register a new directory user."""
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO users (user_id, display_name, chat_id, created_at) VALUES (?, ?, ?, ?)",
                (user_id, display_name, chat_id, now),
            )
        logger.info("User registered: %s '%s'", user_id, display_name)
        return User(user_id=user_id, display_name=display_name, chat_id=chat_id, created_at=now)

    def set_chat_id(self, user_id: str, chat_id: int) -> None:
        """Link a user to a Telegram chat."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET chat_id = ? WHERE user_id = ?", (chat_id, user_id),
            )
        logger.info("Chat id set for user %s", user_id)

    def add_group_member(self, group_id: str, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO group_members (group_id, user_id) VALUES (?, ?)",
                (group_id, user_id),
            )

    def add_team_member(self, team_id: str, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO team_members (team_id, user_id) VALUES (?, ?)",
                (team_id, user_id),
            )

    def get_user(self, user_id: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_by_chat_id(self, chat_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE chat_id = ?", (chat_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_all_users(self, search: str = "") -> list[User]:
        """All users whose id or display name contains `search` (case-insensitive)."""
        query = "SELECT * FROM users"
        params: list = []
        if search:
            query += " WHERE lower(user_id) LIKE ? OR lower(display_name) LIKE ?"
            pattern = f"%{search.lower()}%"
            params.extend([pattern, pattern])
        query += " ORDER BY user_id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_user(r) for r in rows]

    def get_user_group_ids(self, user_id: str) -> set[str]:
        """Groups the user belongs to. Unknown users belong to none."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT gm.group_id FROM group_members gm
                  JOIN users u ON u.user_id = gm.user_id
                 WHERE gm.user_id = ?
                """,
                (user_id,),
            ).fetchall()
        return {r["group_id"] for r in rows}

    def get_group_members(self, group_id: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT gm.user_id FROM group_members gm
                  JOIN users u ON u.user_id = gm.user_id
                 WHERE gm.group_id = ?
                 ORDER BY gm.user_id
                """,
                (group_id,),
            ).fetchall()
        return [r["user_id"] for r in rows]

    def get_team_members(self, team_id: str) -> list[str]:
        """Members of a team, or [] when teams are unavailable."""
        if not self._teams_enabled:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tm.user_id FROM team_members tm
                  JOIN users u ON u.user_id = tm.user_id
                 WHERE tm.team_id = ?
                 ORDER BY tm.user_id
                """,
                (team_id,),
            ).fetchall()
        return [r["user_id"] for r in rows]
