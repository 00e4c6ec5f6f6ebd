import pytest

from errors import Unauthorized


@pytest.fixture
def member(registry, admission):
    room_id = registry.create_room()
    return room_id, admission.admit(room_id).token


def test_member_is_authorized(gate, member):
    room_id, token = member

    context = gate.authorize(room_id, token)

    assert context.room_id == room_id
    assert context.token == token
    assert token in context.connected


@pytest.mark.parametrize("room_id, token", [
    (None, "t"),
    ("", "t"),
    ("room", None),
    ("room", ""),
])
def test_missing_parameters(gate, room_id, token):
    with pytest.raises(Unauthorized):
        gate.authorize(room_id, token)


def test_unknown_room_and_wrong_token_look_the_same(gate, member, registry):
    room_id, token = member
    other_room = registry.create_room()

    with pytest.raises(Unauthorized) as missing_room:
        gate.authorize("does-not-exist", token)
    with pytest.raises(Unauthorized) as wrong_token:
        gate.authorize(room_id, "not-a-member")
    with pytest.raises(Unauthorized) as other_rooms_token:
        gate.authorize(other_room, token)

    assert str(missing_room.value) == str(wrong_token.value) == str(other_rooms_token.value)


def test_destroyed_room_rejects_former_member(gate, member, registry):
    room_id, token = member

    registry.destroy(room_id)

    with pytest.raises(Unauthorized):
        gate.authorize(room_id, token)
