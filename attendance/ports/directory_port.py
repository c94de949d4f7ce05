"""Directory port — read-only lookup of users, groups and teams.

A user id that no longer resolves is not an error: lookups return None or
empty collections. Teams are optional; get_team_members degrades to [].
"""

from __future__ import annotations

from typing import Protocol

from attendance.data.models import User


class DirectoryPort(Protocol):
    """Abstract user directory used by core modules."""

    def get_user(self, user_id: str) -> User | None: ...

    def list_all_users(self, search: str = "") -> list[User]: ...

    def get_user_group_ids(self, user_id: str) -> set[str]: ...

    def get_group_members(self, group_id: str) -> list[str]: ...

    def get_team_members(self, team_id: str) -> list[str]: ...
