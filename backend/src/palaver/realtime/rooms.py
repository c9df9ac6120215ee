"""Per-connection room subscriptions."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, Iterable, Set


class RoomFabric:
    """Track the rooms each connection is subscribed to.

    Room membership is derived from the per-connection sets; there is no
    separate room -> connections index to keep in sync.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def join(self, connection_id: str | None, room_id: str | None) -> bool:
        if not connection_id or not room_id:
            return False
        async with self._lock:
            rooms = self._rooms[connection_id]
            if room_id in rooms:
                return False
            rooms.add(room_id)
            return True

    async def leave(self, connection_id: str | None, room_id: str | None) -> bool:
        if not connection_id or not room_id:
            return False
        async with self._lock:
            rooms = self._rooms.get(connection_id)
            if not rooms or room_id not in rooms:
                return False
            rooms.discard(room_id)
            if not rooms:
                self._rooms.pop(connection_id, None)
            return True

    async def members(self, room_id: str | None) -> frozenset[str]:
        if not room_id:
            return frozenset()
        async with self._lock:
            return frozenset(
                connection_id
                for connection_id, rooms in self._rooms.items()
                if room_id in rooms
            )

    async def rooms_of(self, connection_id: str | None) -> frozenset[str]:
        if not connection_id:
            return frozenset()
        async with self._lock:
            return frozenset(self._rooms.get(connection_id, ()))

    async def drop(self, connection_id: str | None) -> frozenset[str]:
        """Release every room held by *connection_id*."""

        if not connection_id:
            return frozenset()
        async with self._lock:
            return frozenset(self._rooms.pop(connection_id, ()))

    async def evict(self, room_id: str | None, connection_ids: Iterable[str] | None = None) -> int:
        """Remove *room_id* from the given connections, or from all of them."""

        if not room_id:
            return 0
        evicted = 0
        async with self._lock:
            targets = list(self._rooms) if connection_ids is None else list(connection_ids)
            for connection_id in targets:
                rooms = self._rooms.get(connection_id)
                if not rooms or room_id not in rooms:
                    continue
                rooms.discard(room_id)
                evicted += 1
                if not rooms:
                    self._rooms.pop(connection_id, None)
        return evicted
