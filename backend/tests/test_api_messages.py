"""Integration tests for the direct message endpoints."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.models import Message
from conftest import auth_headers


def test_direct_message_is_stored_and_returned(client: TestClient, make_user):
    alice_id, alice_token = make_user("alice")
    bob_id, _ = make_user("bob")

    response = client.post(
        f"/api/messages/{bob_id}",
        json={"text": "  hello bob  ", "image_url": "https://cdn.example/cat.png"},
        headers=auth_headers(alice_token),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["text"] == "hello bob"
    assert body["sender_id"] == alice_id
    assert body["receiver_id"] == bob_id
    assert body["group_id"] is None
    assert body["sender"]["login"] == "alice"
    assert body["image_url"] == "https://cdn.example/cat.png"


def test_direct_message_validation(client: TestClient, make_user):
    alice_id, alice_token = make_user("alice")
    bob_id, _ = make_user("bob")
    headers = auth_headers(alice_token)

    assert client.post(f"/api/messages/{bob_id}", json={"text": "   "}, headers=headers).status_code == 400
    assert client.post(f"/api/messages/{alice_id}", json={"text": "me"}, headers=headers).status_code == 400
    assert client.post("/api/messages/9999", json={"text": "hi"}, headers=headers).status_code == 404
    too_long = client.post(f"/api/messages/{bob_id}", json={"text": "x" * 2001}, headers=headers)
    assert too_long.status_code == 413


def test_requests_without_valid_token_are_rejected(client: TestClient, make_user):
    bob_id, _ = make_user("bob")

    assert client.post(f"/api/messages/{bob_id}", json={"text": "hi"}).status_code == 401
    invalid = client.get("/api/users", headers=auth_headers("not-a-token"))
    assert invalid.status_code == 401


def test_conversation_lists_both_directions_oldest_first(client: TestClient, make_user):
    alice_id, alice_token = make_user("alice")
    bob_id, bob_token = make_user("bob")
    carol_id, carol_token = make_user("carol")

    client.post(f"/api/messages/{bob_id}", json={"text": "one"}, headers=auth_headers(alice_token))
    client.post(f"/api/messages/{alice_id}", json={"text": "two"}, headers=auth_headers(bob_token))
    client.post(f"/api/messages/{bob_id}", json={"text": "unrelated"}, headers=auth_headers(carol_token))

    response = client.get(f"/api/messages/{bob_id}", headers=auth_headers(alice_token))

    assert response.status_code == 200
    assert [message["text"] for message in response.json()] == ["one", "two"]


def test_only_sender_can_delete_message(client: TestClient, make_user, session_factory):
    _, alice_token = make_user("alice")
    bob_id, bob_token = make_user("bob")
    created = client.post(
        f"/api/messages/{bob_id}", json={"text": "oops"}, headers=auth_headers(alice_token)
    ).json()

    forbidden = client.delete(f"/api/messages/{created['id']}", headers=auth_headers(bob_token))
    assert forbidden.status_code == 403

    deleted = client.delete(f"/api/messages/{created['id']}", headers=auth_headers(alice_token))
    assert deleted.status_code == 204
    with session_factory() as session:
        assert session.get(Message, created["id"]) is None

    missing = client.delete(f"/api/messages/{created['id']}", headers=auth_headers(alice_token))
    assert missing.status_code == 404
