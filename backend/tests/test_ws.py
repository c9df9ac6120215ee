"""End-to-end websocket scenarios driven through FastAPI's TestClient."""

from __future__ import annotations

import time

from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession

from app.api import ws as ws_module
from palaver.monitoring import realtime_events_total
from conftest import auth_headers


def _register(connection: WebSocketTestSession, token: str) -> None:
    connection.send_json({"type": "register", "token": token})


def _sync(connection: WebSocketTestSession) -> None:
    """Round-trip a ping so every earlier event on this socket has been handled."""

    connection.send_json({"type": "ping"})
    assert connection.receive_json() == {"type": "pong", "payload": None}


def _active_flags(client: TestClient, token: str) -> dict[str, bool]:
    users = client.get("/api/users", headers=auth_headers(token)).json()
    return {user["login"]: user["is_active"] for user in users}


def test_presence_and_direct_message_round_trip(client: TestClient, make_user):
    alice_id, alice_token = make_user("alice")
    bob_id, bob_token = make_user("bob")
    both_online = sorted([str(alice_id), str(bob_id)])

    with client.websocket_connect("/ws") as alice_ws:
        _register(alice_ws, alice_token)
        assert alice_ws.receive_json() == {"type": "presence-snapshot", "payload": [str(alice_id)]}

        with client.websocket_connect("/ws") as bob_ws:
            _register(bob_ws, bob_token)
            assert bob_ws.receive_json() == {"type": "presence-snapshot", "payload": both_online}
            assert alice_ws.receive_json() == {"type": "presence-snapshot", "payload": both_online}
            assert _active_flags(client, alice_token)["bob"] is True

            response = client.post(
                f"/api/messages/{bob_id}", json={"text": "hello"}, headers=auth_headers(alice_token)
            )
            assert response.status_code == 201
            message = response.json()

            frame = bob_ws.receive_json()
            assert frame["type"] == "new-message"
            assert frame["message_id"] == str(message["id"])
            assert frame["payload"]["text"] == "hello"
            assert frame["payload"]["sender_id"] == alice_id

            client.delete(f"/api/messages/{message['id']}", headers=auth_headers(alice_token))
            assert bob_ws.receive_json() == {
                "type": "message-deleted",
                "payload": {"messageId": str(message["id"]), "userId": str(bob_id)},
                "message_id": str(message["id"]),
            }

        assert alice_ws.receive_json() == {"type": "presence-snapshot", "payload": [str(alice_id)]}
        offline = client.post(
            f"/api/messages/{bob_id}", json={"text": "still there?"}, headers=auth_headers(alice_token)
        )
        assert offline.status_code == 201
        _sync(alice_ws)

    assert realtime_events_total.value("new-message", "queued") == 1

    assert _active_flags(client, bob_token)["alice"] is False
    assert _active_flags(client, alice_token)["bob"] is False


def test_group_lifecycle_reaches_live_members(client: TestClient, make_user):
    alice_id, alice_token = make_user("alice")
    bob_id, bob_token = make_user("bob")

    with client.websocket_connect("/ws") as alice_ws:
        _register(alice_ws, alice_token)
        alice_ws.receive_json()
        with client.websocket_connect("/ws") as bob_ws:
            _register(bob_ws, bob_token)
            bob_ws.receive_json()
            alice_ws.receive_json()
            _exercise_group_lifecycle(client, alice_ws, bob_ws, alice_id, alice_token, bob_id)


def _exercise_group_lifecycle(
    client: TestClient,
    alice_ws: WebSocketTestSession,
    bob_ws: WebSocketTestSession,
    alice_id: int,
    alice_token: str,
    bob_id: int,
) -> None:
    group = client.post(
        "/api/groups",
        json={"name": "Team", "member_ids": [bob_id]},
        headers=auth_headers(alice_token),
    ).json()
    group_id = group["id"]

    for connection in (alice_ws, bob_ws):
        created = connection.receive_json()
        assert created["type"] == "new-group"
        assert created["payload"]["id"] == group_id

    bob_ws.send_json({"type": "join-group", "groupId": str(group_id)})
    bob_ws.send_json({"type": "join-group", "groupId": "4242"})
    assert bob_ws.receive_json() == {
        "type": "error",
        "payload": {"detail": "Not a member of this group"},
    }
    _sync(bob_ws)

    sent = client.post(
        f"/api/groups/{group_id}/messages", json={"text": "standup"}, headers=auth_headers(alice_token)
    ).json()
    frame = bob_ws.receive_json()
    assert frame["type"] == "new-message"
    assert frame["payload"]["groupId"] == str(group_id)
    assert frame["payload"]["message"]["text"] == "standup"
    assert frame["message_id"] == str(sent["id"])

    client.delete(f"/api/groups/{group_id}/members/{bob_id}", headers=auth_headers(alice_token))
    assert bob_ws.receive_json() == {"type": "removed-from-group", "payload": str(group_id)}
    updated = alice_ws.receive_json()
    assert updated["type"] == "group-updated"
    assert [member["user"]["id"] for member in updated["payload"]["members"]] == [alice_id]

    client.delete(f"/api/groups/{group_id}", headers=auth_headers(alice_token))
    assert alice_ws.receive_json() == {"type": "group-deleted", "payload": str(group_id)}
    _sync(alice_ws)
    _sync(bob_ws)


def test_register_with_invalid_token_is_refused(client: TestClient, make_user):
    _, alice_token = make_user("alice")

    with client.websocket_connect("/ws") as connection:
        _register(connection, "forged-token")
        assert connection.receive_json() == {
            "type": "error",
            "payload": {"detail": "Could not validate identity"},
        }
        connection.send_json({"type": "typing", "room": "group:1"})
        assert connection.receive_json()["payload"]["detail"] == "Register before sending events"

        connection.send_text("{broken json")
        assert connection.receive_json()["payload"]["detail"] == "Invalid payload"

        _register(connection, alice_token)
        assert connection.receive_json()["type"] == "presence-snapshot"


def test_connection_survives_keepalive_timeout(client: TestClient, make_user) -> None:
    """Ensure that the server side keepalive pings keep the socket open."""

    _, token = make_user("keepalive-user")

    settings = ws_module.settings
    original_timeout = settings.websocket_keepalive_timeout_seconds
    original_interval = settings.websocket_keepalive_ping_interval_seconds

    settings.websocket_keepalive_timeout_seconds = 0.1
    settings.websocket_keepalive_ping_interval_seconds = 0.05

    try:
        with client.websocket_connect("/ws") as connection:
            _register(connection, token)
            _assert_keepalive_sequence(connection)
    finally:
        settings.websocket_keepalive_timeout_seconds = original_timeout
        settings.websocket_keepalive_ping_interval_seconds = original_interval


def _assert_keepalive_sequence(connection: WebSocketTestSession) -> None:
    """Observe two keepalive pings with client responses to keep the connection active."""

    snapshot = connection.receive_json()
    assert snapshot["type"] == "presence-snapshot"

    time.sleep(0.15)
    ping = connection.receive_json()
    assert ping["type"] == "ping"
    connection.send_json({"type": "pong"})

    time.sleep(0.12)
    ping_again = connection.receive_json()
    assert ping_again["type"] == "ping"
    connection.send_json({"type": "pong"})

    _sync(connection)


def test_metrics_endpoint_reports_realtime_gauges(client: TestClient, make_user):
    _, token = make_user("alice")

    with client.websocket_connect("/ws") as connection:
        _register(connection, token)
        connection.receive_json()
        body = client.get("/metrics").text

    assert "realtime_active_connections" in body
    assert "realtime_online_users 1" in body
    assert 'realtime_events_total{kind="presence-snapshot",outcome="queued"}' in body
