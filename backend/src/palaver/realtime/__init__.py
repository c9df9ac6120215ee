"""Real-time presence and message fanout core."""

from __future__ import annotations

from dataclasses import dataclass

from .connections import DEFAULT_OUTBOX_SIZE, Connection, ConnectionState, ConnectionTable
from .dedup import SeenCache
from .events import (
    DirectRecipients,
    EventKind,
    GroupRecipients,
    GroupSnapshot,
    OutboundEvent,
    group_room,
    user_room,
)
from .fanout import MessageFanoutDispatcher
from .lifecycle import (
    Authenticator,
    ConnectionLifecycleManager,
    GroupAuthorizer,
    PresenceListener,
)
from .notifier import GroupChangeNotifier
from .presence import PresenceRegistry
from .rooms import RoomFabric


@dataclass(slots=True)
class RealtimeCore:
    """One wired set of realtime components, owned by the composition root."""

    registry: PresenceRegistry
    rooms: RoomFabric
    lifecycle: ConnectionLifecycleManager
    dispatcher: MessageFanoutDispatcher
    notifier: GroupChangeNotifier

    async def shutdown(self) -> None:
        await self.lifecycle.shutdown()


def build_realtime(
    *,
    outbox_size: int = DEFAULT_OUTBOX_SIZE,
    authenticate: Authenticator | None = None,
    authorize_group: GroupAuthorizer | None = None,
    on_presence: PresenceListener | None = None,
) -> RealtimeCore:
    registry = PresenceRegistry()
    rooms = RoomFabric()
    connections = ConnectionTable()
    lifecycle = ConnectionLifecycleManager(
        registry,
        rooms,
        connections,
        outbox_size=outbox_size,
        authenticate=authenticate,
        authorize_group=authorize_group,
        on_presence=on_presence,
    )
    return RealtimeCore(
        registry=registry,
        rooms=rooms,
        lifecycle=lifecycle,
        dispatcher=MessageFanoutDispatcher(registry, connections),
        notifier=GroupChangeNotifier(rooms, connections),
    )


__all__ = [
    "Connection",
    "ConnectionLifecycleManager",
    "ConnectionState",
    "ConnectionTable",
    "DirectRecipients",
    "EventKind",
    "GroupChangeNotifier",
    "GroupRecipients",
    "GroupSnapshot",
    "MessageFanoutDispatcher",
    "OutboundEvent",
    "PresenceRegistry",
    "RealtimeCore",
    "RoomFabric",
    "SeenCache",
    "build_realtime",
    "group_room",
    "user_room",
]
