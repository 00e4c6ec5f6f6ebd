from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.websockets import WebSocketDisconnect

from constants import AUTH_COOKIE_NAME


def create_room(client):
    response = client.post("/rooms/")
    assert response.status_code == 201
    return response.json()["room_id"]


@pytest.fixture
def room_with_two(make_client):
    alice, bob = make_client(), make_client()
    room_id = create_room(alice)
    assert alice.post(f"/rooms/{room_id}/join").status_code == 200
    assert bob.post(f"/rooms/{room_id}/join").status_code == 200
    return room_id, alice, bob


def test_join_sets_room_scoped_cookie(make_client):
    client = make_client()
    room_id = create_room(client)

    response = client.post(f"/rooms/{room_id}/join")

    assert response.status_code == 200
    assert response.json() == {"room_id": room_id, "already_member": False}
    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith(f"{AUTH_COOKIE_NAME}=")
    assert f"Path=/rooms/{room_id}" in set_cookie
    assert "HttpOnly" in set_cookie
    # The token travels only in the cookie
    assert response.cookies[AUTH_COOKIE_NAME] not in response.text


def test_rejoin_is_idempotent(room_with_two):
    room_id, alice, _ = room_with_two

    response = alice.post(f"/rooms/{room_id}/join")

    assert response.status_code == 200
    assert response.json()["already_member"] is True
    assert "set-cookie" not in response.headers


def test_third_visitor_is_turned_away(room_with_two, make_client):
    room_id, _, _ = room_with_two

    response = make_client().post(f"/rooms/{room_id}/join")

    assert response.status_code == 403
    assert response.json() == {"detail": "Room is full"}


def test_join_unknown_room(make_client):
    response = make_client().post("/rooms/does-not-exist/join")

    assert response.status_code == 404
    assert response.json() == {"detail": "Room not found"}


def test_send_and_list_with_redaction(room_with_two):
    room_id, alice, bob = room_with_two

    sent = alice.post(f"/rooms/{room_id}/messages", json={"sender": "alice", "text": "hi"})
    assert sent.status_code == 201
    message_id = sent.json()["id"]

    [as_alice] = alice.get(f"/rooms/{room_id}/messages").json()["messages"]
    [as_bob] = bob.get(f"/rooms/{room_id}/messages").json()["messages"]

    assert as_alice["auth_token"]
    assert as_bob["auth_token"] is None
    for seen in (as_alice, as_bob):
        assert seen["id"] == message_id
        assert seen["sender"] == "alice"
        assert seen["text"] == "hi"


def test_oversized_message_is_rejected_before_storing(room_with_two):
    room_id, alice, _ = room_with_two

    response = alice.post(f"/rooms/{room_id}/messages", json={"sender": "a" * 101, "text": "hi"})
    assert response.status_code == 422
    response = alice.post(f"/rooms/{room_id}/messages", json={"sender": "alice", "text": "x" * 1001})
    assert response.status_code == 422

    assert alice.get(f"/rooms/{room_id}/messages").json() == {"messages": []}


@pytest.mark.parametrize("method, path", [
    ("get", "/rooms/{room_id}/messages"),
    ("post", "/rooms/{room_id}/messages"),
    ("get", "/rooms/{room_id}/ttl"),
    ("delete", "/rooms/{room_id}"),
])
def test_non_members_are_unauthorized(room_with_two, make_client, method, path):
    room_id, _, _ = room_with_two
    stranger = make_client()
    kwargs = {"json": {"sender": "eve", "text": "hi"}} if method == "post" else {}

    response = getattr(stranger, method)(path.format(room_id=room_id), **kwargs)

    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


def test_ttl(room_with_two):
    room_id, alice, _ = room_with_two

    response = alice.get(f"/rooms/{room_id}/ttl")

    assert response.status_code == 200
    assert 0 < response.json()["ttl"] <= 600


def test_destroy(room_with_two, make_client):
    room_id, alice, bob = room_with_two
    alice.post(f"/rooms/{room_id}/messages", json={"sender": "alice", "text": "hi"})

    assert alice.delete(f"/rooms/{room_id}").status_code == 204

    assert bob.get(f"/rooms/{room_id}/messages").status_code == 401
    assert make_client().post(f"/rooms/{room_id}/join").status_code == 404


def test_store_outage_is_retryable(make_client, fake_redis):
    client = make_client()
    room_id = create_room(client)

    with patch.object(fake_redis, "pipeline", side_effect=RedisConnectionError("down")):
        response = client.post(f"/rooms/{room_id}/join")

    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"


def test_health(make_client):
    assert make_client().get("/health").json() == {"status": "ok"}


def test_event_stream_rejects_non_members(room_with_two, make_client):
    room_id, _, _ = room_with_two

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with make_client().websocket_connect(f"/rooms/{room_id}/ws"):
            pass

    assert exc_info.value.code == 1008
