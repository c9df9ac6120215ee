"""Live connection handles and the per-process connection table."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Iterator, Protocol

from fastapi.websockets import WebSocketDisconnect, WebSocketState

from palaver.monitoring import realtime_connections, realtime_events_total

from .events import OutboundEvent

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 256


class Transport(Protocol):
    """Subset of the Starlette ``WebSocket`` API used for delivery."""

    application_state: WebSocketState

    async def send_json(self, data: Any) -> None: ...


async def safe_send_json(websocket: Transport, data: dict[str, Any]) -> bool:
    """Send JSON through *websocket*, returning False instead of raising on a dead socket."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class Connection:
    """A live transport session with its own ordered outbound queue.

    Events are enqueued without waiting and written by a single writer task,
    so a connection observes events in the order they were enqueued.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        connection_id: str | None = None,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
    ) -> None:
        self.connection_id = connection_id or uuid.uuid4().hex
        self.transport = transport
        self.user_id: str | None = None
        self.state = ConnectionState.UNAUTHENTICATED
        self._outbox: asyncio.Queue[OutboundEvent] = asyncio.Queue(maxsize=max(outbox_size, 1))
        self._writer: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id!r}, user={self.user_id!r}, "
            f"state={self.state.value})"
        )

    @property
    def is_active(self) -> bool:
        return self.state is ConnectionState.ACTIVE

    def enqueue(self, event: OutboundEvent) -> bool:
        if self.state is ConnectionState.DISCONNECTED:
            return False
        try:
            self._outbox.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(
                self._drain(), name=f"palaver-writer-{self.connection_id}"
            )

    async def _drain(self) -> None:
        while True:
            event = await self._outbox.get()
            try:
                delivered = await safe_send_json(self.transport, event.to_wire())
            finally:
                self._outbox.task_done()
            if not delivered:
                logger.debug(
                    "Dropped %s event for closed connection %s", event.kind.value, self.connection_id
                )

    async def flush(self) -> None:
        """Wait until every queued event has been handed to the transport."""

        if self._writer is None or self._writer.done():
            return
        await self._outbox.join()

    async def stop(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()


class ConnectionTable:
    """All connections handled by this process, keyed by connection id."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def add(self, connection: Connection) -> None:
        if connection.connection_id not in self._connections:
            self._connections[connection.connection_id] = connection
            realtime_connections.labels("websocket").inc()

    def remove(self, connection_id: str) -> Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            realtime_connections.labels("websocket").dec()
        return connection

    def get(self, connection_id: str | None) -> Connection | None:
        if not connection_id:
            return None
        return self._connections.get(connection_id)

    def send(self, connection_id: str | None, event: OutboundEvent) -> bool:
        """Queue *event* for one connection; never blocks and never raises."""

        connection = self.get(connection_id)
        if connection is None:
            realtime_events_total.labels(event.kind.value, "dropped").inc()
            return False
        if not connection.enqueue(event):
            realtime_events_total.labels(event.kind.value, "dropped").inc()
            logger.warning(
                "Outbox unavailable for connection %s; dropping %s event",
                connection_id,
                event.kind.value,
            )
            return False
        realtime_events_total.labels(event.kind.value, "queued").inc()
        logger.debug("Queued %s event for connection %s", event.kind.value, connection_id)
        return True
