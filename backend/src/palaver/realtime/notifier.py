"""Push group state changes to the identity rooms of affected users."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from .connections import ConnectionTable
from .events import EventKind, GroupSnapshot, OutboundEvent, group_room, user_room
from .rooms import RoomFabric

logger = logging.getLogger(__name__)


class GroupChangeNotifier:
    """Fan group mutations out to every connection of the affected users.

    Callers commit the mutation and validate the admin role before calling in.
    """

    def __init__(self, rooms: RoomFabric, connections: ConnectionTable) -> None:
        self._rooms = rooms
        self._connections = connections

    async def notify_created(self, group: GroupSnapshot) -> int:
        event = OutboundEvent(EventKind.NEW_GROUP, group.payload)
        return await self._emit_to_users(group.member_ids, event)

    async def notify_updated(self, group: GroupSnapshot) -> int:
        event = OutboundEvent(EventKind.GROUP_UPDATED, group.payload)
        return await self._emit_to_users(group.member_ids, event)

    async def notify_member_removed(self, group: GroupSnapshot, removed_user_id: Any) -> int:
        removed = str(removed_user_id)
        remaining = group.member_ids - {removed}
        sent = await self._emit_to_users(
            remaining, OutboundEvent(EventKind.GROUP_UPDATED, group.payload)
        )
        removed_connections = await self._rooms.members(user_room(removed))
        sent += self._emit(
            removed_connections, OutboundEvent(EventKind.REMOVED_FROM_GROUP, group.group_id)
        )
        await self._rooms.evict(group_room(group.group_id), removed_connections)
        return sent

    async def notify_deleted(self, group_id: Any, former_member_ids: Iterable[Any]) -> int:
        """Notify members captured before the group was deleted."""

        group_key = str(group_id)
        members = {str(member) for member in former_member_ids}
        sent = await self._emit_to_users(
            members, OutboundEvent(EventKind.GROUP_DELETED, group_key)
        )
        evicted = await self._rooms.evict(group_room(group_key))
        if evicted:
            logger.debug("Evicted %d connection(s) from deleted group %s", evicted, group_key)
        return sent

    async def _emit_to_users(self, user_ids: Iterable[str], event: OutboundEvent) -> int:
        targets: set[str] = set()
        for user_id in user_ids:
            targets |= await self._rooms.members(user_room(user_id))
        return self._emit(targets, event)

    def _emit(self, connection_ids: Iterable[str], event: OutboundEvent) -> int:
        sent = 0
        for connection_id in sorted(connection_ids):
            if self._connections.send(connection_id, event):
                sent += 1
        return sent
