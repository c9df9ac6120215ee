"""Connection state machine and client control event handling."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping

from palaver.monitoring import realtime_online_users

from .connections import DEFAULT_OUTBOX_SIZE, Connection, ConnectionState, ConnectionTable, Transport
from .events import (
    GROUP_ROOM_PREFIX,
    EventKind,
    OutboundEvent,
    error_event,
    group_room,
    presence_snapshot_event,
    user_room,
)
from .presence import PresenceRegistry
from .rooms import RoomFabric

logger = logging.getLogger(__name__)

Authenticator = Callable[[Mapping[str, Any]], Awaitable[str | None]]
GroupAuthorizer = Callable[[str, str], Awaitable[bool]]
PresenceListener = Callable[[str, bool], Awaitable[None]]
Handler = Callable[[Connection, Mapping[str, Any]], Awaitable[None]]

_PRE_REGISTRATION_EVENTS = frozenset({"register", "ping", "pong"})


async def _trust_declared_identity(data: Mapping[str, Any]) -> str | None:
    value = data.get("userId")
    return None if value in (None, "") else str(value)


async def _allow_any_group(user_id: str, group_id: str) -> bool:
    return True


class ConnectionLifecycleManager:
    """Drive connections from ``unauthenticated`` through ``active`` to ``disconnected``.

    Registration records the identity in the presence registry, joins the
    identity room and broadcasts the presence snapshot to every connection.
    Teardown is keyed by connection id and always releases presence and room
    state, whether or not the client closed cleanly.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        rooms: RoomFabric,
        connections: ConnectionTable | None = None,
        *,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
        authenticate: Authenticator | None = None,
        authorize_group: GroupAuthorizer | None = None,
        on_presence: PresenceListener | None = None,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._connections = connections if connections is not None else ConnectionTable()
        self._outbox_size = outbox_size
        self._authenticate = authenticate or _trust_declared_identity
        self._authorize_group = authorize_group or _allow_any_group
        self._on_presence = on_presence
        self._handlers: Dict[str, Handler] = {
            "register": self._on_register,
            "join-group": self._on_join_group,
            "leave-group": self._on_leave_group,
            "typing": self._on_typing,
            "stop-typing": self._on_stop_typing,
            "ping": self._on_ping,
            "pong": self._on_pong,
        }

    @property
    def connections(self) -> ConnectionTable:
        return self._connections

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # -- transitions ---------------------------------------------------------

    def open(self, transport: Transport, *, connection_id: str | None = None) -> Connection:
        connection = Connection(
            transport, connection_id=connection_id, outbox_size=self._outbox_size
        )
        self._connections.add(connection)
        connection.start()
        logger.info("Connection %s opened", connection.connection_id)
        return connection

    async def register(self, connection: Connection, user_id: Any) -> bool:
        user_key = None if user_id in (None, "") else str(user_id)
        if user_key is None or connection.state is ConnectionState.DISCONNECTED:
            return False
        if connection.is_active and connection.user_id != user_key:
            logger.warning(
                "Connection %s already registered as %s; refusing identity %s",
                connection.connection_id,
                connection.user_id,
                user_key,
            )
            return False
        if not await self._registry.register(user_key, connection.connection_id):
            return False
        if connection.state is ConnectionState.DISCONNECTED:
            # Closed while the registry lock was contended.
            await self._registry.unregister(connection.connection_id)
            return False
        connection.user_id = user_key
        connection.state = ConnectionState.ACTIVE
        await self._rooms.join(connection.connection_id, user_room(user_key))
        logger.info("User %s registered on connection %s", user_key, connection.connection_id)
        await self._presence_changed(user_key, True)
        return True

    async def close(self, connection: Connection) -> None:
        if connection.state is ConnectionState.DISCONNECTED:
            return
        connection.state = ConnectionState.DISCONNECTED
        self._connections.remove(connection.connection_id)
        removed_user = await self._registry.unregister(connection.connection_id)
        await self._rooms.drop(connection.connection_id)
        await connection.stop()
        logger.info(
            "Connection %s closed (user=%s)", connection.connection_id, connection.user_id
        )
        if removed_user is not None:
            await self._presence_changed(removed_user, False)

    # -- active sub-operations ----------------------------------------------

    async def join_group_room(self, connection: Connection, group_id: Any) -> bool:
        if not connection.is_active or group_id in (None, ""):
            return False
        return await self._rooms.join(connection.connection_id, group_room(group_id))

    async def leave_group_room(self, connection: Connection, group_id: Any) -> bool:
        if not connection.is_active or group_id in (None, ""):
            return False
        return await self._rooms.leave(connection.connection_id, group_room(group_id))

    async def relay_typing(self, connection: Connection, room_id: Any, *, typing: bool = True) -> int:
        """Relay an ephemeral typing indicator to the other connections of a room."""

        if not connection.is_active or not isinstance(room_id, str) or not room_id:
            return 0
        if room_id.startswith(GROUP_ROOM_PREFIX):
            joined = await self._rooms.rooms_of(connection.connection_id)
            if room_id not in joined:
                return 0
        kind = EventKind.TYPING if typing else EventKind.STOP_TYPING
        event = OutboundEvent(kind, {"room": room_id, "userId": connection.user_id})
        return await self.send_room(room_id, event, exclude={connection.connection_id})

    # -- delivery helpers ----------------------------------------------------

    def send(self, connection_id: str | None, event: OutboundEvent) -> bool:
        return self._connections.send(connection_id, event)

    async def send_room(
        self, room_id: str, event: OutboundEvent, *, exclude: set[str] | None = None
    ) -> int:
        skip = exclude or set()
        sent = 0
        for connection_id in sorted(await self._rooms.members(room_id)):
            if connection_id in skip:
                continue
            if self._connections.send(connection_id, event):
                sent += 1
        return sent

    def broadcast(self, event: OutboundEvent) -> int:
        sent = 0
        for connection in self._connections:
            if self._connections.send(connection.connection_id, event):
                sent += 1
        return sent

    async def broadcast_presence(self) -> int:
        online = await self._registry.snapshot()
        realtime_online_users.set(len(online))
        return self.broadcast(presence_snapshot_event(online))

    async def shutdown(self) -> None:
        for connection in self._connections:
            await self.close(connection)

    async def _presence_changed(self, user_id: str, online: bool) -> None:
        if self._on_presence is not None:
            try:
                await self._on_presence(user_id, online)
            except Exception:
                logger.exception("Presence listener failed for user %s", user_id)
        await self.broadcast_presence()

    # -- client control events -------------------------------------------------

    async def handle(self, connection: Connection, payload: Any) -> None:
        """Dispatch one client control event to its handler."""

        if not isinstance(payload, Mapping):
            self.send(connection.connection_id, error_event("Invalid payload"))
            return
        event_type = payload.get("type")
        handler = self._handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            self.send(connection.connection_id, error_event("Unsupported event type"))
            return
        if event_type not in _PRE_REGISTRATION_EVENTS and not connection.is_active:
            self.send(connection.connection_id, error_event("Register before sending events"))
            return
        await handler(connection, payload)

    async def _on_register(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        try:
            user_id = await self._authenticate(payload)
        except Exception:
            logger.exception("Authentication hook failed on connection %s", connection.connection_id)
            self.send(connection.connection_id, error_event("Registration is temporarily unavailable"))
            return
        if user_id is None:
            self.send(connection.connection_id, error_event("Could not validate identity"))
            return
        if not await self.register(connection, user_id):
            self.send(
                connection.connection_id,
                error_event("Connection is already registered to another user"),
            )

    async def _on_join_group(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        group_id = payload.get("groupId")
        if group_id in (None, ""):
            return
        try:
            allowed = await self._authorize_group(str(connection.user_id), str(group_id))
        except Exception:
            logger.exception(
                "Group authorization failed for user %s and group %s", connection.user_id, group_id
            )
            self.send(connection.connection_id, error_event("Could not join group"))
            return
        if not allowed:
            self.send(connection.connection_id, error_event("Not a member of this group"))
            return
        await self.join_group_room(connection, group_id)

    async def _on_leave_group(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        await self.leave_group_room(connection, payload.get("groupId"))

    async def _on_typing(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        await self.relay_typing(connection, payload.get("room"), typing=True)

    async def _on_stop_typing(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        await self.relay_typing(connection, payload.get("room"), typing=False)

    async def _on_ping(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        self.send(connection.connection_id, OutboundEvent(EventKind.PONG))

    async def _on_pong(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        return None
