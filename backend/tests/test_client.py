from __future__ import annotations

import json
from typing import Any

import pytest

from palaver.client import ChatClient
from palaver.realtime import EventKind


class FakeServerSocket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def chat_client(clock) -> ChatClient:
    chat_client = ChatClient("ws://testserver/ws", "token", dedup_window_seconds=10, clock=clock)
    chat_client._websocket = FakeServerSocket()
    return chat_client


def _new_message(message_id: int) -> dict[str, Any]:
    return {
        "type": "new-message",
        "payload": {"id": message_id, "text": "hi"},
        "message_id": str(message_id),
    }


@pytest.mark.anyio("asyncio")
async def test_duplicate_message_inside_window_is_dropped(chat_client, clock):
    received: list[Any] = []
    chat_client.on(EventKind.NEW_MESSAGE, received.append)

    assert await chat_client.process(json.dumps(_new_message(1))) is True
    clock.now = 5
    assert await chat_client.process(json.dumps(_new_message(1))) is False
    clock.now = 11
    assert await chat_client.process(json.dumps(_new_message(1))) is True

    assert len(received) == 2


@pytest.mark.anyio("asyncio")
async def test_duplicate_new_group_is_dropped_by_group_id(chat_client):
    groups: list[Any] = []

    async def on_group(payload: Any) -> None:
        groups.append(payload["id"])

    chat_client.on("new-group", on_group)
    frame = {"type": "new-group", "payload": {"id": 7, "name": "Team"}}

    await chat_client.process(frame)
    await chat_client.process(frame)

    assert groups == [7]


@pytest.mark.anyio("asyncio")
async def test_presence_snapshot_updates_online_users(chat_client):
    await chat_client.process({"type": "presence-snapshot", "payload": [1, "2"]})

    assert chat_client.online_users == frozenset({"1", "2"})


@pytest.mark.anyio("asyncio")
async def test_server_ping_is_answered_with_pong(chat_client):
    handled = await chat_client.process('{"type": "ping"}')

    assert handled is False
    assert chat_client._websocket.sent == [{"type": "pong"}]


@pytest.mark.anyio("asyncio")
async def test_malformed_and_unknown_frames_are_ignored(chat_client):
    assert await chat_client.process("not json") is False
    assert await chat_client.process('["list"]') is False
    assert await chat_client.process({"type": "mystery"}) is False


@pytest.mark.anyio("asyncio")
async def test_control_helpers_send_expected_events(chat_client):
    await chat_client.join_group(7)
    await chat_client.typing("group:7")
    await chat_client.stop_typing("group:7")
    await chat_client.leave_group(7)

    assert chat_client._websocket.sent == [
        {"type": "join-group", "groupId": "7"},
        {"type": "typing", "room": "group:7"},
        {"type": "stop-typing", "room": "group:7"},
        {"type": "leave-group", "groupId": "7"},
    ]
