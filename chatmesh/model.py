"""Domain records exchanged between chat services, with JSON and document codecs."""

import base64
import binascii
import dataclasses
import json
import re
import typing
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})"
)

_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class RoomType(str, Enum):
    """Kind of room; decides how messages are fanned out."""

    GROUP = "group"
    DM = "dm"

    def __str__(self) -> str:
        return self.value


class Role(str, Enum):
    """Role of a member within a room."""

    OWNER = "owner"
    MEMBER = "member"

    def __str__(self) -> str:
        return self.value


def _field(
    name: str,
    default: Any = dataclasses.MISSING,
    *,
    factory: Any = dataclasses.MISSING,
    bson: "str | None" = None,
    enum: "type[Enum] | None" = None,
    omitempty: bool = False,
) -> Any:
    metadata = {"json": name, "bson": bson or name, "enum": enum, "omitempty": omitempty}
    return field(default=default, default_factory=factory, metadata=metadata)


@dataclass
class ErrorResponse:
    error: str = _field("error", "")


@dataclass
class User:
    id: str = _field("id", "", bson="_id")
    name: str = _field("name", "")
    site_id: str = _field("siteId", "")


@dataclass
class Room:
    id: str = _field("id", "", bson="_id")
    name: str = _field("name", "")
    type: RoomType | str = _field("type", "", enum=RoomType)
    created_by: str = _field("createdBy", "")
    site_id: str = _field("siteId", "")
    user_count: int = _field("userCount", 0)
    created_at: datetime = _field("createdAt", ZERO_TIME)
    updated_at: datetime = _field("updatedAt", ZERO_TIME)


@dataclass
class CreateRoomRequest:
    name: str = _field("name", "")
    type: RoomType | str = _field("type", "", enum=RoomType)
    created_by: str = _field("createdBy", "")
    site_id: str = _field("siteId", "")
    members: list[str] = _field("members", factory=list, omitempty=True)


@dataclass
class ListRoomsResponse:
    rooms: list[Room] = _field("rooms", factory=list)


@dataclass
class Message:
    id: str = _field("id", "")
    room_id: str = _field("roomId", "")
    user_id: str = _field("userId", "")
    content: str = _field("content", "")
    created_at: datetime = _field("createdAt", ZERO_TIME)


@dataclass
class SendMessageRequest:
    room_id: str = _field("roomId", "")
    content: str = _field("content", "")
    request_id: str = _field("requestId", "")


@dataclass
class Subscription:
    id: str = _field("id", "", bson="_id")
    user_id: str = _field("userId", "")
    room_id: str = _field("roomId", "")
    site_id: str = _field("siteId", "")
    role: Role | str = _field("role", "", enum=Role)
    shared_history_since: datetime = _field("sharedHistorySince", ZERO_TIME)
    joined_at: datetime = _field("joinedAt", ZERO_TIME)


@dataclass
class MessageEvent:
    message: Message = _field("message", factory=Message)
    room_id: str = _field("roomId", "")
    site_id: str = _field("siteId", "")


@dataclass
class RoomMetadataUpdateEvent:
    room_id: str = _field("roomId", "")
    name: str = _field("name", "")
    user_count: int = _field("userCount", 0)
    last_message_at: datetime = _field("lastMessageAt", ZERO_TIME)
    updated_at: datetime = _field("updatedAt", ZERO_TIME)


@dataclass
class SubscriptionUpdateEvent:
    user_id: str = _field("userId", "")
    subscription: Subscription = _field("subscription", factory=Subscription)
    action: str = _field("action", "")


@dataclass
class InviteMemberRequest:
    inviter_id: str = _field("inviterId", "")
    invitee_id: str = _field("inviteeId", "")
    room_id: str = _field("roomId", "")
    site_id: str = _field("siteId", "")


@dataclass
class NotificationEvent:
    type: str = _field("type", "")
    room_id: str = _field("roomId", "")
    message: Message = _field("message", factory=Message)


@dataclass
class OutboxEvent:
    type: str = _field("type", "")
    site_id: str = _field("siteId", "")
    dest_site_id: str = _field("destSiteId", "")
    payload: bytes = _field("payload", b"")


@dataclass
class HistoryRequest:
    room_id: str = _field("roomId", "")
    before: str = _field("before", "", omitempty=True)
    limit: int = _field("limit", 0, omitempty=True)


@dataclass
class HistoryResponse:
    messages: list[Message] = _field("messages", factory=list)
    has_more: bool = _field("hasMore", False)


def format_time(value: datetime) -> str:
    """Format a datetime as RFC 3339 with trailing fractional zeros trimmed."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def parse_time(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; fractions beyond microseconds are truncated."""
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"cannot parse {text!r} as an RFC 3339 time")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micros = int((fraction or "").ljust(6, "0")[:6])
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        delta = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])) * sign
        tz = timezone.utc if not delta else timezone(delta)
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tzinfo=tz
    )


def _encode_value(value: Any, document: bool) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _encode_object(value, document)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value if document else format_time(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value) if document else base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        return {str(key): _encode_value(item, document) for key, item in items}
    if isinstance(value, (list, tuple)):
        return [_encode_value(item, document) for item in value]
    return value


def _encode_object(obj: Any, document: bool) -> dict:
    out: dict = {}
    key_kind = "bson" if document else "json"
    for f in dataclasses.fields(obj):
        value = getattr(obj, f.name)
        if f.metadata.get("omitempty") and not value:
            continue
        out[f.metadata.get(key_kind, f.name)] = _encode_value(value, document)
    return out


def _mismatch(raw: Any, where: str) -> ValueError:
    return ValueError(f"cannot decode {type(raw).__name__} into {where}")


def _zero(hint: Any) -> Any:
    if dataclasses.is_dataclass(hint):
        return hint()
    if typing.get_origin(hint) is list:
        return []
    if hint is datetime:
        return ZERO_TIME
    if hint in (str, int, bool, bytes):
        return hint()
    return None


def _decode_value(raw: Any, hint: Any, enum: Any, document: bool, where: str) -> Any:
    if enum is not None:
        if not isinstance(raw, str):
            raise _mismatch(raw, where)
        try:
            return enum(raw)
        except ValueError:
            return raw
    if typing.get_origin(hint) is list:
        if not isinstance(raw, list):
            raise _mismatch(raw, where)
        (item_hint,) = typing.get_args(hint)
        return [
            _zero(item_hint) if item is None else _decode_value(item, item_hint, None, document, where)
            for item in raw
        ]
    if dataclasses.is_dataclass(hint):
        return _decode_object(hint, raw, document)
    if hint is datetime:
        if document and isinstance(raw, datetime):
            return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
        if isinstance(raw, str):
            return parse_time(raw)
        raise _mismatch(raw, where)
    if hint is bytes:
        if document and isinstance(raw, (bytes, bytearray)):
            return bytes(raw)
        if isinstance(raw, str):
            try:
                return base64.b64decode(raw, validate=True)
            except binascii.Error as exc:
                raise ValueError(f"invalid base64 data in {where}") from exc
        raise _mismatch(raw, where)
    if hint is bool:
        if not isinstance(raw, bool):
            raise _mismatch(raw, where)
        return raw
    if hint is int:
        if not isinstance(raw, int) or isinstance(raw, bool):
            raise _mismatch(raw, where)
        return raw
    if hint is str:
        if not isinstance(raw, str):
            raise _mismatch(raw, where)
        return raw
    return raw


def _decode_object(cls: Any, raw: Any, document: bool) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise _mismatch(raw, cls.__name__)
    lowered = {} if document else {str(key).lower(): value for key, value in raw.items()}
    key_kind = "bson" if document else "json"
    kwargs: dict = {}
    for f in dataclasses.fields(cls):
        key = f.metadata.get(key_kind, f.name)
        if key in raw:
            value = raw[key]
        elif key.lower() in lowered:
            value = lowered[key.lower()]
        else:
            continue
        if value is None:
            continue
        kwargs[f.name] = _decode_value(
            value, f.type, f.metadata.get("enum"), document, f"{cls.__name__}.{f.name}"
        )
    return cls(**kwargs)


def to_json(obj: Any) -> bytes:
    """Encode a record (or plain JSON-like value) as compact JSON bytes."""
    text = json.dumps(
        _encode_value(obj, False), ensure_ascii=False, separators=(",", ":"), allow_nan=False
    )
    for raw, escaped in _HTML_ESCAPES:
        text = text.replace(raw, escaped)
    return text.encode("utf-8")


def from_json(cls: Any, data: Any) -> Any:
    """Decode JSON into an instance of ``cls``; raises ValueError on bad input."""
    try:
        raw = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON for {cls.__name__}: {exc}") from exc
    return _decode_object(cls, raw, False)


def to_document(obj: Any) -> dict:
    """Encode a record as a database document keyed by its storage names."""
    return _encode_object(obj, True)


def from_document(cls: Any, doc: dict) -> Any:
    """Build a record from a database document; naive times are taken as UTC."""
    return _decode_object(cls, doc, True)