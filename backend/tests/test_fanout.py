from __future__ import annotations

import logging

import pytest

from palaver.monitoring import realtime_events_total
from conftest import DummyWebSocket
from palaver.realtime import (
    Connection,
    ConnectionTable,
    DirectRecipients,
    GroupRecipients,
    MessageFanoutDispatcher,
    PresenceRegistry,
)


class Harness:
    def __init__(self) -> None:
        self.registry = PresenceRegistry()
        self.connections = ConnectionTable()
        self.dispatcher = MessageFanoutDispatcher(self.registry, self.connections)
        self._opened: list[Connection] = []

    async def connect(self, user_id: str, *, outbox_size: int = 256, start: bool = True):
        websocket = DummyWebSocket()
        connection = Connection(websocket, outbox_size=outbox_size)
        self.connections.add(connection)
        if start:
            connection.start()
        await self.registry.register(user_id, connection.connection_id)
        self._opened.append(connection)
        return connection, websocket

    async def flush(self) -> None:
        for connection in self._opened:
            await connection.flush()

    async def close(self) -> None:
        for connection in self._opened:
            self.connections.remove(connection.connection_id)
            await connection.stop()


@pytest.fixture()
async def harness():
    harness = Harness()
    yield harness
    await harness.close()


def _message(message_id: int, text: str = "hello") -> dict[str, object]:
    return {"id": message_id, "text": text, "sender_id": 1}


@pytest.mark.anyio("asyncio")
async def test_direct_message_reaches_only_the_receiver(harness):
    _, sender_ws = await harness.connect("1")
    _, receiver_ws = await harness.connect("2")
    _, bystander_ws = await harness.connect("3")

    delivered = await harness.dispatcher.dispatch(
        _message(10), DirectRecipients(receiver_id="2", sender_id="1")
    )
    await harness.flush()

    assert delivered == 1
    assert receiver_ws.sent == [
        {"type": "new-message", "payload": _message(10), "message_id": "10"}
    ]
    assert sender_ws.sent == []
    assert bystander_ws.sent == []


@pytest.mark.anyio("asyncio")
async def test_direct_message_to_offline_user_is_silently_skipped(harness):
    _, sender_ws = await harness.connect("1")

    delivered = await harness.dispatcher.dispatch(
        _message(11), DirectRecipients(receiver_id="2", sender_id="1")
    )
    await harness.flush()

    assert delivered == 0
    assert sender_ws.sent == []


@pytest.mark.anyio("asyncio")
async def test_direct_message_to_self_is_not_echoed(harness):
    _, websocket = await harness.connect("1")

    delivered = await harness.dispatcher.dispatch(
        _message(12), DirectRecipients(receiver_id="1", sender_id="1")
    )
    await harness.flush()

    assert delivered == 0
    assert websocket.sent == []


@pytest.mark.anyio("asyncio")
async def test_group_message_reaches_each_online_member_except_sender(harness):
    _, sender_ws = await harness.connect("1")
    _, member_ws = await harness.connect("2")
    _, other_member_ws = await harness.connect("3")
    _, outsider_ws = await harness.connect("4")

    delivered = await harness.dispatcher.dispatch(
        _message(20),
        GroupRecipients.build(7, [1, 2, 3, 5], sender_id=1),
    )
    await harness.flush()

    expected = {
        "type": "new-message",
        "payload": {"groupId": "7", "message": _message(20)},
        "message_id": "20",
    }
    assert delivered == 2
    assert member_ws.sent == [expected]
    assert other_member_ws.sent == [expected]
    assert sender_ws.sent == []
    assert outsider_ws.sent == []


@pytest.mark.anyio("asyncio")
async def test_deletion_mirrors_message_routing(harness):
    await harness.connect("1")
    _, receiver_ws = await harness.connect("2")
    _, member_ws = await harness.connect("3")

    await harness.dispatcher.dispatch_deletion(30, DirectRecipients(receiver_id="2", sender_id="1"))
    await harness.dispatcher.dispatch_deletion(31, GroupRecipients.build(7, [1, 3], sender_id=1))
    await harness.flush()

    assert receiver_ws.sent == [
        {"type": "message-deleted", "payload": {"messageId": "30", "userId": "2"}, "message_id": "30"}
    ]
    assert member_ws.sent == [
        {"type": "message-deleted", "payload": {"messageId": "31", "groupId": "7"}, "message_id": "31"}
    ]


@pytest.mark.anyio("asyncio")
async def test_events_keep_dispatch_order_per_connection(harness):
    await harness.connect("1")
    _, receiver_ws = await harness.connect("2")

    for message_id in range(1, 51):
        await harness.dispatcher.dispatch(
            _message(message_id), DirectRecipients(receiver_id="2", sender_id="1")
        )
    await harness.flush()

    assert [frame["message_id"] for frame in receiver_ws.sent] == [
        str(message_id) for message_id in range(1, 51)
    ]


@pytest.mark.anyio("asyncio")
async def test_full_outbox_drops_without_blocking_other_recipients(harness, caplog):
    _, slow_ws = await harness.connect("2", outbox_size=2, start=False)
    _, fast_ws = await harness.connect("3")
    recipients = GroupRecipients.build(7, [1, 2, 3], sender_id=1)

    with caplog.at_level(logging.WARNING, logger="palaver.realtime.connections"):
        delivered = [
            await harness.dispatcher.dispatch(_message(message_id), recipients)
            for message_id in (1, 2, 3)
        ]
    await harness.flush()

    assert delivered == [2, 2, 1]
    assert [frame["message_id"] for frame in fast_ws.sent] == ["1", "2", "3"]
    assert slow_ws.sent == []
    assert realtime_events_total.value("new-message", "dropped") == 1
    assert realtime_events_total.value("new-message", "queued") == 5
    assert "dropping new-message event" in caplog.text
