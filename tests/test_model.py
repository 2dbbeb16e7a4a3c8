import json
from datetime import datetime, timedelta, timezone

import pytest

from chatmesh.model import (
    ErrorResponse,
    HistoryRequest,
    HistoryResponse,
    Message,
    MessageEvent,
    OutboxEvent,
    Role,
    Room,
    RoomType,
    Subscription,
    User,
    ZERO_TIME,
    format_time,
    from_document,
    from_json,
    parse_time,
    to_document,
    to_json,
)

UTC = timezone.utc


def test_user_json_round_trip():
    user = User(id="u1", name="alice", site_id="site-a")
    assert from_json(User, to_json(user)) == user


def test_room_json_round_trip():
    room = Room(
        id="r1", name="general", type=RoomType.GROUP, created_by="u1", site_id="site-a",
        user_count=5,
        created_at=datetime(2026, 1, 1, tzinfo=UTC),
        updated_at=datetime(2026, 1, 1, tzinfo=UTC),
    )
    assert from_json(Room, to_json(room)) == room


def test_message_json_round_trip():
    msg = Message(
        id="m1", room_id="r1", user_id="u1", content="hello",
        created_at=datetime(2026, 1, 1, 12, tzinfo=UTC),
    )
    assert from_json(Message, to_json(msg)) == msg


def test_subscription_json_round_trip():
    sub = Subscription(
        id="s1", user_id="u1", room_id="r1", site_id="site-a", role=Role.OWNER,
        shared_history_since=datetime(2026, 1, 1, tzinfo=UTC),
        joined_at=datetime(2026, 1, 1, tzinfo=UTC),
    )
    back = from_json(Subscription, to_json(sub))
    assert back == sub
    assert back.role is Role.OWNER


def test_room_type_values():
    assert json.loads(to_json(Room(type=RoomType.GROUP)))["type"] == "group"
    assert json.loads(to_json(Room(type=RoomType.DM)))["type"] == "dm"
    assert from_json(Room, b'{"type":"dm"}').type is RoomType.DM


def test_role_values():
    assert json.loads(to_json(Subscription(role=Role.OWNER)))["role"] == "owner"
    assert json.loads(to_json(Subscription(role=Role.MEMBER)))["role"] == "member"
    assert from_json(Subscription, b'{"role":"member"}').role is Role.MEMBER


def test_room_json_field_names():
    data = json.loads(to_json(Room(id="r1", type=RoomType.DM)))
    assert list(data) == [
        "id", "name", "type", "createdBy", "siteId", "userCount", "createdAt", "updatedAt",
    ]
    assert data["type"] == "dm"
    assert data["createdAt"] == "0001-01-01T00:00:00Z"


def test_history_request_omits_empty_fields():
    assert to_json(HistoryRequest(room_id="r1")) == b'{"roomId":"r1"}'
    data = json.loads(to_json(HistoryRequest(room_id="r1", before="x", limit=3)))
    assert data == {"roomId": "r1", "before": "x", "limit": 3}


def test_nested_message_event_round_trip():
    evt = MessageEvent(
        message=Message(id="m1", room_id="room-1", user_id="alice", content="hello group",
                        created_at=datetime(2026, 3, 19, 12, tzinfo=UTC)),
        room_id="room-1", site_id="site-a",
    )
    assert from_json(MessageEvent, to_json(evt)) == evt


def test_outbox_payload_is_base64():
    evt = OutboxEvent(type="member_added", site_id="site-b", dest_site_id="site-a", payload=b"{}")
    data = json.loads(to_json(evt))
    assert data["payload"] == "e30="
    assert from_json(OutboxEvent, to_json(evt)).payload == b"{}"


def test_history_response_round_trip():
    resp = HistoryResponse(messages=[Message(id="m1"), Message(id="m2")], has_more=True)
    assert from_json(HistoryResponse, to_json(resp)) == resp


def test_html_characters_are_escaped():
    assert to_json(ErrorResponse(error="<a&b>")) == b'{"error":"\\u003ca\\u0026b\\u003e"}'


def test_invalid_json_raises():
    with pytest.raises(ValueError):
        from_json(MessageEvent, b"not json")


def test_non_object_raises():
    with pytest.raises(ValueError):
        from_json(Room, b"[1]")


def test_type_mismatch_raises():
    with pytest.raises(ValueError):
        from_json(Room, b'{"userCount":"five"}')


def test_missing_fields_take_zero_values():
    room = from_json(Room, b'{"id":"r1"}')
    assert room == Room(id="r1")
    assert room.created_at == ZERO_TIME


def test_keys_match_case_insensitively():
    assert from_json(Message, b'{"ROOMID":"r1"}').room_id == "r1"


def test_unknown_room_type_is_kept():
    assert from_json(Room, b'{"type":"channel"}').type == "channel"


def test_format_time_trims_fraction_and_formats_offsets():
    assert format_time(datetime(2026, 1, 1, 12, 0, 0, 500000, tzinfo=UTC)) == "2026-01-01T12:00:00.5Z"
    ist = timezone(timedelta(hours=5, minutes=30))
    assert format_time(datetime(2026, 1, 1, tzinfo=ist)) == "2026-01-01T00:00:00+05:30"
    assert format_time(datetime(2026, 1, 1)) == "2026-01-01T00:00:00Z"


def test_parse_time_truncates_nanoseconds():
    parsed = parse_time("2026-03-19T12:00:00.123456789Z")
    assert parsed == datetime(2026, 3, 19, 12, 0, 0, 123456, tzinfo=UTC)


def test_parse_time_round_trips_format_time():
    value = datetime(2026, 3, 19, 15, 4, 5, 120000, tzinfo=timezone(timedelta(hours=-7)))
    assert parse_time(format_time(value)) == value


def test_parse_time_rejects_bad_text():
    with pytest.raises(ValueError):
        parse_time("2026-01-01")


def test_document_uses_storage_names():
    doc = to_document(Room(id="r1", name="general", created_at=datetime(2026, 1, 1, tzinfo=UTC)))
    assert doc["_id"] == "r1"
    assert "id" not in doc
    assert doc["createdAt"] == datetime(2026, 1, 1, tzinfo=UTC)


def test_from_document_reads_naive_times_as_utc():
    sub = from_document(Subscription, {"_id": "s1", "role": "owner", "joinedAt": datetime(2026, 1, 1)})
    assert sub.id == "s1"
    assert sub.role is Role.OWNER
    assert sub.joined_at == datetime(2026, 1, 1, tzinfo=UTC)