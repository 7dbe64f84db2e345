import json
from datetime import datetime, timezone

import pytest

from api import codec
from api.codec import (
    ChatMessage,
    CreateRoomAck,
    CreateRoomRequest,
    ErrorEvent,
    JoinAck,
    JoinRequest,
    MessageRequest,
    encode,
    format_timestamp,
)


def test_decode_join_uses_camel_case_fields():
    event = codec.decode('{"type": "join", "room": "AbC123", "userId": "u1"}')
    assert isinstance(event, JoinRequest)
    assert event.room == "AbC123"
    assert event.user_id == "u1"


def test_decode_create_room_keeps_description():
    event = codec.decode(json.dumps({
        "type": "create_room", "userId": "u1", "roomName": "Test", "message": "about",
    }))
    assert isinstance(event, CreateRoomRequest)
    assert event.room_name == "Test"
    assert event.message == "about"


def test_decode_tolerates_missing_kind_fields():
    event = codec.decode('{"type": "message", "room": "r1"}')
    assert isinstance(event, MessageRequest)
    assert event.message is None
    assert event.timestamp is None


def test_decode_ignores_unknown_fields():
    event = codec.decode('{"type": "leave", "room": "r1", "userId": "u1", "extra": 1}')
    assert event.type == "leave"


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2, 3]",
    '"join"',
    '{"room": "r1", "userId": "u1"}',
    '{"type": "shout", "room": "r1"}',
    '{"type": "join", "room": 42}',
])
def test_decode_rejects_malformed_frames(raw):
    with pytest.raises(codec.InvalidEvent):
        codec.decode(raw)


def test_encode_join_ack_uses_wire_names():
    payload = json.loads(encode(JoinAck(room_id=3, room_name="Test", room_code="AbC123", user_count=2)))
    assert payload["type"] == "join"
    assert payload["roomId"] == 3
    assert payload["roomName"] == "Test"
    assert payload["roomCode"] == "AbC123"
    assert payload["userCount"] == 2
    assert payload["timestamp"].endswith("Z")


def test_encode_omits_absent_description():
    payload = json.loads(encode(CreateRoomAck(room_id=1, room_name="Test", room_code="AbC123", user_count=1)))
    assert "message" not in payload
    assert payload["type"] == "create_room"


def test_encode_error_event():
    assert json.loads(encode(ErrorEvent(message="Room not found"))) == {"type": "error", "message": "Room not found"}


def test_system_message_keeps_its_type():
    payload = json.loads(encode(ChatMessage(type="system", room_code="r1", user_id="system", message="hi")))
    assert payload["type"] == "system"
    assert payload["userId"] == "system"


def test_format_timestamp_treats_naive_values_as_utc():
    naive = datetime(2024, 5, 1, 12, 0, 0, 123456)
    aware = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert format_timestamp(naive) == "2024-05-01T12:00:00.123Z"
    assert format_timestamp(aware) == "2024-05-01T12:00:00.123Z"
    assert format_timestamp(None) is None
