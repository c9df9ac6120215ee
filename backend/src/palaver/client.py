"""Asyncio consumer of the Palaver websocket event stream."""

from __future__ import annotations

import inspect
import json
import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List

import websockets

from .realtime.dedup import DEFAULT_CAPACITY, DEFAULT_WINDOW_SECONDS, Clock, SeenCache
from .realtime.events import EventKind

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None] | None]


class ChatClient:
    """Register on ``/ws``, keep the online list current and dispatch events.

    ``new-message`` and ``new-group`` events seen again inside the dedup
    window are dropped before reaching handlers.
    """

    def __init__(
        self,
        url: str,
        token: str,
        *,
        dedup_window_seconds: float = DEFAULT_WINDOW_SECONDS,
        dedup_capacity: int = DEFAULT_CAPACITY,
        clock: Clock = time.monotonic,
        open_timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._token = token
        self._open_timeout = open_timeout
        self._handlers: Dict[EventKind, List[EventHandler]] = defaultdict(list)
        self._seen_messages = SeenCache(dedup_window_seconds, capacity=dedup_capacity, clock=clock)
        self._seen_groups = SeenCache(dedup_window_seconds, capacity=dedup_capacity, clock=clock)
        self._websocket: Any = None
        self.online_users: frozenset[str] = frozenset()

    async def __aenter__(self) -> "ChatClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def on(self, kind: EventKind | str, handler: EventHandler) -> None:
        self._handlers[EventKind(kind)].append(handler)

    async def connect(self) -> None:
        if self._websocket is not None:
            return
        self._seen_messages.clear()
        self._seen_groups.clear()
        self._websocket = await websockets.connect(self._url, open_timeout=self._open_timeout)
        await self._send({"type": "register", "token": self._token})
        logger.info("Connected to %s", self._url)

    async def close(self) -> None:
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            await websocket.close()

    async def join_group(self, group_id: Any) -> None:
        await self._send({"type": "join-group", "groupId": str(group_id)})

    async def leave_group(self, group_id: Any) -> None:
        await self._send({"type": "leave-group", "groupId": str(group_id)})

    async def typing(self, room: str) -> None:
        await self._send({"type": "typing", "room": room})

    async def stop_typing(self, room: str) -> None:
        await self._send({"type": "stop-typing", "room": room})

    async def run(self) -> None:
        """Consume events until the server closes the connection."""

        if self._websocket is None:
            raise RuntimeError("Client is not connected")
        try:
            async for raw in self._websocket:
                await self.process(raw)
        except websockets.ConnectionClosed as exc:
            logger.info("Connection closed: %s", exc)

    async def process(self, raw: str | bytes | dict[str, Any]) -> bool:
        """Handle one server frame; return True when handlers were invoked."""

        if isinstance(raw, dict):
            frame = raw
        else:
            try:
                frame = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed frame")
                return False
        if not isinstance(frame, dict):
            return False

        frame_type = frame.get("type")
        if frame_type == "ping":
            await self._send({"type": "pong"})
            return False
        try:
            kind = EventKind(frame_type)
        except ValueError:
            logger.debug("Ignoring unknown event type %r", frame_type)
            return False

        payload = frame.get("payload")
        if self._is_duplicate(kind, frame, payload):
            logger.debug("Duplicate %s ignored", kind.value)
            return False
        if kind is EventKind.PRESENCE_SNAPSHOT:
            self.online_users = frozenset(str(user) for user in payload or ())

        for handler in list(self._handlers.get(kind, ())):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
        return True

    def _is_duplicate(self, kind: EventKind, frame: dict[str, Any], payload: Any) -> bool:
        if kind is EventKind.NEW_MESSAGE:
            message_id = frame.get("message_id")
            return message_id is not None and self._seen_messages.seen(str(message_id))
        if kind is EventKind.NEW_GROUP and isinstance(payload, dict):
            group_id = payload.get("id")
            return group_id is not None and self._seen_groups.seen(str(group_id))
        return False

    async def _send(self, data: dict[str, Any]) -> None:
        if self._websocket is None:
            raise RuntimeError("Client is not connected")
        await self._websocket.send(json.dumps(data))
