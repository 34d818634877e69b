import pytest

from conftest import T0


def test_join_creates_room(join):
    response = join()
    assert response.status_code == 200
    body = response.json()
    room = body["room"]
    assert room["imageKey"] == "3"
    assert room["customImageUrl"] is None
    assert room["duration"] == 60
    assert room["isCreator"] is True
    assert "passwordHash" not in room
    assert body["userId"]
    assert [u["username"] for u in body["users"]] == ["alice"]
    assert body["messages"] == []


def test_join_twice_returns_same_room(join):
    first = join().json()
    second = join(username="bob").json()
    assert second["room"]["id"] == first["room"]["id"]
    assert second["room"]["isCreator"] is False
    assert second["userId"] != first["userId"]
    assert [u["username"] for u in second["users"]] == ["alice", "bob"]


def test_join_with_other_password_never_returns_first_room(join):
    first = join().json()
    other = join(password="Secret2", username="bob").json()
    assert other["room"]["id"] != first["room"]["id"]
    assert other["room"]["isCreator"] is True


def test_join_returns_history(client, join):
    first = join().json()
    client.post(
        f"/api/rooms/{first['room']['id']}/messages",
        json={"userId": first["userId"], "username": "alice", "content": "hello"},
    )
    second = join(username="bob").json()
    assert [m["content"] for m in second["messages"]] == ["hello"]


def test_join_with_custom_image_uses_reserved_key(join):
    body = join(image_key="", custom_image_url="/uploads/abc.png").json()
    assert body["room"]["imageKey"] == "custom"
    assert body["room"]["customImageUrl"] == "/uploads/abc.png"


def test_join_caps_requested_duration(join):
    assert join(duration=15).json()["room"]["duration"] == 15
    assert join(password="Other12", duration=500).json()["room"]["duration"] == 60


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"password": "short"}, "at least 6"),
        ({"username": "   "}, "Username is required"),
        ({"image_key": ""}, "Select an image"),
        ({"image_key": "custom"}, "Select an image"),
    ],
)
def test_join_validation_failures(backend, join, overrides, fragment):
    response = join(**overrides)
    assert response.status_code == 400
    assert fragment in response.json()["detail"]
    assert backend.count_live_rooms() == 0


def test_join_missing_field_is_a_validation_failure(client):
    response = client.post("/api/rooms/join", json={"imageKey": "3", "username": "alice"})
    assert response.status_code == 400
    assert "password" in response.json()["detail"]


def test_status_unknown_room_is_not_found(client):
    response = client.get("/api/rooms/nope/status", params={"userId": "x"})
    assert response.status_code == 404


def test_status_reports_creator_and_activity(client, join):
    alice = join().json()
    bob = join(username="bob").json()
    room_id = alice["room"]["id"]

    as_alice = client.get(f"/api/rooms/{room_id}/status", params={"userId": alice["userId"]}).json()
    as_bob = client.get(f"/api/rooms/{room_id}/status", params={"userId": bob["userId"]}).json()
    anonymous = client.get(f"/api/rooms/{room_id}/status").json()

    assert as_alice["room"]["isActive"] is True
    assert as_alice["room"]["isCreator"] is True
    assert as_bob["room"]["isCreator"] is False
    assert anonymous["room"]["isCreator"] is False
    assert [u["username"] for u in as_bob["users"]] == ["alice", "bob"]


def test_room_expires_after_duration(client, clock, join):
    alice = join().json()
    room_id = alice["room"]["id"]
    params = {"userId": alice["userId"]}

    clock.advance(minutes=59)
    response = client.get(f"/api/rooms/{room_id}/status", params=params)
    assert response.status_code == 200
    assert response.json()["room"]["isActive"] is True

    clock.advance(minutes=2)
    assert client.get(f"/api/rooms/{room_id}/status", params=params).status_code == 404


def test_incremental_polling(client, clock, join):
    alice = join().json()
    bob = join(username="bob").json()
    room_id = alice["room"]["id"]

    clock.advance(seconds=30)
    sent = client.post(
        f"/api/rooms/{room_id}/messages",
        json={"userId": alice["userId"], "username": "alice", "content": "hello"},
    )
    assert sent.status_code == 200
    t1 = sent.json()["createdAt"]

    first_poll = client.get(
        f"/api/rooms/{room_id}/status",
        params={"userId": bob["userId"], "since": T0.isoformat()},
    ).json()
    assert [m["content"] for m in first_poll["messages"]] == ["hello"]
    assert first_poll["messages"][0]["createdAt"] == t1
    assert first_poll["cursor"] == t1

    second_poll = client.get(
        f"/api/rooms/{room_id}/status",
        params={"userId": bob["userId"], "since": t1},
    ).json()
    assert second_poll["messages"] == []
    assert second_poll["cursor"] == t1


def test_duplicate_polls_are_harmless(client, join):
    alice = join().json()
    room_id = alice["room"]["id"]
    params = {"userId": alice["userId"]}
    first = client.get(f"/api/rooms/{room_id}/status", params=params).json()
    second = client.get(f"/api/rooms/{room_id}/status", params=params).json()
    assert first == second


def test_send_message_returns_created_message(client, join):
    alice = join().json()
    room_id = alice["room"]["id"]
    response = client.post(
        f"/api/rooms/{room_id}/messages",
        json={"userId": alice["userId"], "username": "alice", "content": "  hi there "},
    )
    assert response.status_code == 200
    message = response.json()
    assert message["content"] == "hi there"
    assert message["roomId"] == room_id
    assert message["userId"] == alice["userId"]
    assert message["username"] == "alice"
    assert message["id"]


def test_send_empty_message_is_rejected(client, join):
    alice = join().json()
    response = client.post(
        f"/api/rooms/{alice['room']['id']}/messages",
        json={"userId": alice["userId"], "username": "alice", "content": "   "},
    )
    assert response.status_code == 400


def test_send_to_unknown_room_is_not_found(client):
    response = client.post(
        "/api/rooms/nope/messages",
        json={"userId": "u", "username": "alice", "content": "hello"},
    )
    assert response.status_code == 404


def test_only_creator_can_close(client, join):
    alice = join().json()
    bob = join(username="bob").json()
    room_id = alice["room"]["id"]

    response = client.post(f"/api/rooms/{room_id}/close", json={"userId": bob["userId"]})
    assert response.status_code == 403

    response = client.post(f"/api/rooms/{room_id}/close", json={"userId": alice["userId"]})
    assert response.status_code == 200

    for user in (alice, bob):
        status = client.get(f"/api/rooms/{room_id}/status", params={"userId": user["userId"]})
        assert status.status_code == 404


def test_send_after_close_is_not_found(client, join):
    alice = join().json()
    bob = join(username="bob").json()
    room_id = alice["room"]["id"]
    client.post(f"/api/rooms/{room_id}/close", json={"userId": alice["userId"]})

    response = client.post(
        f"/api/rooms/{room_id}/messages",
        json={"userId": bob["userId"], "username": "bob", "content": "anyone?"},
    )
    assert response.status_code == 404


def test_close_twice_by_creator_succeeds(client, join):
    alice = join().json()
    room_id = alice["room"]["id"]
    assert client.post(f"/api/rooms/{room_id}/close", json={"userId": alice["userId"]}).status_code == 200
    assert client.post(f"/api/rooms/{room_id}/close", json={"userId": alice["userId"]}).status_code == 200


def test_close_closed_room_by_stranger_is_not_found(client, join):
    alice = join().json()
    room_id = alice["room"]["id"]
    client.post(f"/api/rooms/{room_id}/close", json={"userId": alice["userId"]})
    assert client.post(f"/api/rooms/{room_id}/close", json={"userId": "stranger"}).status_code == 404


def test_close_unknown_room_is_not_found(client):
    assert client.post("/api/rooms/nope/close", json={"userId": "x"}).status_code == 404


def test_leave_is_idempotent(client, join):
    alice = join().json()
    bob = join(username="bob").json()
    room_id = alice["room"]["id"]

    for _ in range(2):
        response = client.post(f"/api/rooms/{room_id}/leave", json={"userId": bob["userId"]})
        assert response.status_code == 200

    users = client.get(f"/api/rooms/{room_id}/status", params={"userId": alice["userId"]}).json()["users"]
    assert [u["username"] for u in users] == ["alice"]


def test_leave_unknown_room_succeeds(client):
    assert client.post("/api/rooms/nope/leave", json={"userId": "x"}).status_code == 200


def test_health_counts_live_rooms(client, join):
    join()
    join(password="Other12")
    assert client.get("/health").json() == {"status": "ok", "rooms": 2}
