"""Pydantic schemas for API payloads."""

from .groups import GroupCreate, GroupMemberRead, GroupMembersAdd, GroupPromotion, GroupRead
from .messages import MessageCreate, MessageRead
from .users import PublicUser

__all__ = [
    "PublicUser",
    "MessageCreate",
    "MessageRead",
    "GroupCreate",
    "GroupRead",
    "GroupMemberRead",
    "GroupMembersAdd",
    "GroupPromotion",
]
