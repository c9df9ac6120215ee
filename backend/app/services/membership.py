"""Cached group membership lookups backed by the ``group_members`` table."""

from __future__ import annotations

import threading
from typing import Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import GroupMember, GroupRole


class GroupMembershipIndex:
    """``group_id -> {user_id: role}`` rebuilt from storage after each mutation.

    Persisted rows stay the source of truth; the index only saves the
    membership and role checks from re-reading them on every request.
    """

    def __init__(self) -> None:
        self._groups: Dict[int, Dict[int, GroupRole]] = {}
        self._lock = threading.Lock()

    def refresh(self, group_id: int, db: Session) -> Dict[int, GroupRole]:
        stmt = select(GroupMember.user_id, GroupMember.role).where(GroupMember.group_id == group_id)
        members = {user_id: role for user_id, role in db.execute(stmt).all()}
        with self._lock:
            if members:
                self._groups[group_id] = members
            else:
                self._groups.pop(group_id, None)
        return dict(members)

    def forget(self, group_id: int) -> None:
        with self._lock:
            self._groups.pop(group_id, None)

    def clear(self) -> None:
        with self._lock:
            self._groups.clear()

    def members(self, group_id: int, db: Session) -> Dict[int, GroupRole]:
        with self._lock:
            cached = self._groups.get(group_id)
            if cached is not None:
                return dict(cached)
        return self.refresh(group_id, db)

    def member_ids(self, group_id: int, db: Session) -> frozenset[int]:
        return frozenset(self.members(group_id, db))

    def is_member(self, group_id: int, user_id: int, db: Session) -> bool:
        return user_id in self.members(group_id, db)

    def is_admin(self, group_id: int, user_id: int, db: Session) -> bool:
        return self.members(group_id, db).get(user_id) is GroupRole.ADMIN


membership_index = GroupMembershipIndex()
"""Process-wide membership index shared by the API and websocket hooks."""
