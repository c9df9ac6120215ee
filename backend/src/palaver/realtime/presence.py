"""In-memory presence registry: which user is online on which connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Map user identities to their most recent live connection.

    A second registration for an identity replaces the stored connection
    (last-connection-wins); the superseded connection is not notified.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def register(self, user_id: str | None, connection_id: str | None) -> bool:
        if not user_id or not connection_id:
            return False
        async with self._lock:
            previous = self._entries.get(user_id)
            self._entries[user_id] = connection_id
        if previous is not None and previous != connection_id:
            logger.info(
                "User %s re-registered on connection %s (superseding %s)",
                user_id,
                connection_id,
                previous,
            )
        return True

    async def unregister(self, connection_id: str | None) -> str | None:
        """Remove the entry held by *connection_id* and return its user id."""

        if not connection_id:
            return None
        async with self._lock:
            for user_id, current in self._entries.items():
                if current == connection_id:
                    del self._entries[user_id]
                    return user_id
        return None

    async def lookup(self, user_id: str | None) -> str | None:
        if not user_id:
            return None
        async with self._lock:
            return self._entries.get(user_id)

    async def snapshot(self) -> frozenset[str]:
        async with self._lock:
            return frozenset(self._entries)
