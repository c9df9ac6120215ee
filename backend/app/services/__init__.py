"""Application service helpers."""

from .membership import GroupMembershipIndex, membership_index

__all__ = [
    "GroupMembershipIndex",
    "membership_index",
]
