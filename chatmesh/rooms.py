"""Room service: room create/list/get requests and invite authorization."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from . import subject
from .errors import ChatError, NotFoundError
from .model import (
    CreateRoomRequest,
    InviteMemberRequest,
    ListRoomsResponse,
    Role,
    Room,
    Subscription,
    from_document,
    from_json,
    to_document,
    to_json,
)
from .replies import reply_error, reply_json

logger = logging.getLogger(__name__)

QUEUE_GROUP = "room-service"


class RoomStore(Protocol):
    """Persistence operations for the room service."""

    def create_room(self, room: Room) -> None: ...

    def get_room(self, room_id: str) -> Room: ...

    def list_rooms(self) -> list[Room]: ...

    def get_subscription(self, user_id: str, room_id: str) -> Subscription: ...

    def create_subscription(self, sub: Subscription) -> None: ...


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def _respond(msg: Any, data: bytes) -> None:
    try:
        msg.respond(data)
    except Exception:
        logger.exception("failed to respond to message")


class RoomService:
    """Handles room requests; invites are authorized here and forwarded to a stream."""

    def __init__(
        self,
        store: RoomStore,
        site_id: str,
        max_room_size: int,
        publish_to_stream: Callable[[bytes], Any],
    ) -> None:
        self.store = store
        self.site_id = site_id
        self.max_room_size = max_room_size
        self.publish_to_stream = publish_to_stream

    def register_crud(self, conn: Any) -> None:
        """Subscribe the room CRUD handlers on ``conn`` via ``queue_subscribe(subj, queue, cb)``."""
        conn.queue_subscribe("chat.rooms.create", QUEUE_GROUP, self.on_create_room)
        conn.queue_subscribe("chat.rooms.list", QUEUE_GROUP, self.on_list_rooms)
        conn.queue_subscribe("chat.rooms.get.*", QUEUE_GROUP, self.on_get_room)

    def on_create_room(self, msg: Any) -> None:
        try:
            resp = self.handle_create_room(msg.data)
        except ChatError as exc:
            reply_error(msg, str(exc))
            return
        _respond(msg, resp)

    def on_list_rooms(self, msg: Any) -> None:
        try:
            rooms = self.store.list_rooms()
        except Exception as exc:
            reply_error(msg, str(exc))
            return
        reply_json(msg, ListRoomsResponse(rooms=list(rooms)))

    def on_get_room(self, msg: Any) -> None:
        room_id = msg.subject.split(".")[-1]
        try:
            room = self.store.get_room(room_id)
        except Exception as exc:
            reply_error(msg, str(exc))
            return
        reply_json(msg, room)

    def on_invite(self, msg: Any) -> None:
        try:
            resp = self.handle_invite(msg.subject, msg.data)
        except ChatError as exc:
            reply_error(msg, str(exc))
            return
        _respond(msg, resp)

    def handle_create_room(self, data: bytes | str) -> bytes:
        """Create a room and its owner's subscription; return the room as JSON."""
        try:
            req = from_json(CreateRoomRequest, data)
        except ValueError as exc:
            raise ChatError(f"invalid request: {exc}") from exc

        now = datetime.now(timezone.utc)
        room = Room(
            id=str(uuid.uuid4()),
            name=req.name,
            type=req.type,
            created_by=req.created_by,
            site_id=req.site_id,
            user_count=1,
            created_at=now,
            updated_at=now,
        )
        try:
            self.store.create_room(room)
        except Exception as exc:
            raise ChatError(f"create room: {exc}") from exc

        sub = Subscription(
            id=str(uuid.uuid4()),
            user_id=req.created_by,
            room_id=room.id,
            site_id=req.site_id,
            role=Role.OWNER,
            shared_history_since=now,
            joined_at=now,
        )
        try:
            self.store.create_subscription(sub)
        except Exception:
            logger.warning("create owner subscription failed", exc_info=True)

        return to_json(room)

    def handle_invite(self, subj: str, data: bytes | str) -> bytes:
        """Check the inviter owns a room with space, then forward the invite to the stream."""
        parsed = subject.parse_user_room_subject(subj)
        if parsed is None:
            raise ChatError(f"invalid invite subject: {subj}")
        inviter_id, room_id = parsed

        try:
            sub = self.store.get_subscription(inviter_id, room_id)
        except Exception as exc:
            raise ChatError(f"inviter not found: {exc}") from exc
        if sub.role != Role.OWNER:
            raise ChatError("only owners can invite members")

        try:
            room = self.store.get_room(room_id)
        except Exception as exc:
            raise ChatError(f"room not found: {exc}") from exc
        if room.user_count >= self.max_room_size:
            raise ChatError(f"room is at maximum capacity ({self.max_room_size})")

        try:
            from_json(InviteMemberRequest, data)
        except ValueError as exc:
            raise ChatError(f"invalid request: {exc}") from exc

        try:
            self.publish_to_stream(_as_bytes(data))
        except Exception as exc:
            raise ChatError(f"publish to stream: {exc}") from exc

        return to_json({"status": "ok"})


class MongoRoomStore:
    """RoomStore backed by the ``rooms`` and ``subscriptions`` collections of a database."""

    def __init__(self, db: Any) -> None:
        self.rooms = db["rooms"]
        self.subscriptions = db["subscriptions"]

    def create_room(self, room: Room) -> None:
        self.rooms.insert_one(to_document(room))

    def get_room(self, room_id: str) -> Room:
        doc = self.rooms.find_one({"_id": room_id})
        if doc is None:
            raise NotFoundError(f'room "{room_id}" not found')
        return from_document(Room, doc)

    def list_rooms(self) -> list[Room]:
        return [from_document(Room, doc) for doc in self.rooms.find({})]

    def get_subscription(self, user_id: str, room_id: str) -> Subscription:
        doc = self.subscriptions.find_one({"userId": user_id, "roomId": room_id})
        if doc is None:
            raise NotFoundError("subscription not found")
        return from_document(Subscription, doc)

    def create_subscription(self, sub: Subscription) -> None:
        self.subscriptions.insert_one(to_document(sub))