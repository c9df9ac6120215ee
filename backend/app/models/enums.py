from __future__ import annotations

from enum import Enum


class GroupRole(str, Enum):
    """Roles a user can hold inside a group."""

    ADMIN = "admin"
    MEMBER = "member"
