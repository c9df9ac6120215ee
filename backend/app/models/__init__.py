"""Database models package."""

from .base import Base
from .chat import Group, GroupMember, Message, User
from .enums import GroupRole

__all__ = [
    "Base",
    "User",
    "Group",
    "GroupMember",
    "Message",
    "GroupRole",
]
