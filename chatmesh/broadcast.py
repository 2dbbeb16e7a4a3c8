"""Broadcast worker: fans stored messages out to room and user streams."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from . import subject
from .errors import ChatError, NotFoundError
from .model import (
    MessageEvent,
    Room,
    RoomMetadataUpdateEvent,
    RoomType,
    Subscription,
    from_document,
    from_json,
)
from .replies import marshal_response

logger = logging.getLogger(__name__)


class RoomLookup(Protocol):
    """Reads room data and membership from a data store."""

    def get_room(self, room_id: str) -> Room: ...

    def list_subscriptions(self, room_id: str) -> list[Subscription]: ...


class Publisher(Protocol):
    """Publishes a payload on a subject; raises on failure."""

    def publish(self, subject: str, data: bytes) -> None: ...


def _marshal(value: Any, what: str) -> bytes:
    try:
        return marshal_response(value)
    except (TypeError, ValueError) as exc:
        raise ChatError(f"marshal {what}: {exc}") from exc


class BroadcastHandler:
    """Processes fanout messages and broadcasts them to room or user streams."""

    def __init__(self, rooms: RoomLookup, pub: Publisher) -> None:
        self.rooms = rooms
        self.pub = pub

    def handle_message(self, data: bytes | str) -> None:
        """Handle one fanout payload; raises ChatError if it cannot be processed."""
        try:
            evt = from_json(MessageEvent, data)
        except ValueError as exc:
            raise ChatError(f"unmarshal message event: {exc}") from exc

        try:
            room = self.rooms.get_room(evt.room_id)
        except Exception as exc:
            raise ChatError(f"get room {evt.room_id}: {exc}") from exc

        meta = RoomMetadataUpdateEvent(
            room_id=room.id,
            name=room.name,
            user_count=room.user_count,
            last_message_at=evt.message.created_at,
            updated_at=evt.message.created_at,
        )
        meta_data = _marshal(meta, "metadata event")
        try:
            self.pub.publish(subject.room_metadata_update(room.id), meta_data)
        except Exception as exc:
            raise ChatError(f"publish metadata update: {exc}") from exc

        evt_data = _marshal(evt, "message event")

        if room.type == RoomType.GROUP:
            try:
                self.pub.publish(subject.room_msg_stream(room.id), evt_data)
            except Exception as exc:
                raise ChatError(f"publish to group room stream: {exc}") from exc
        elif room.type == RoomType.DM:
            try:
                subs = self.rooms.list_subscriptions(room.id)
            except Exception as exc:
                raise ChatError(f"list subscriptions for DM room {room.id}: {exc}") from exc
            for sub in subs:
                try:
                    self.pub.publish(subject.user_msg_stream(sub.user_id), evt_data)
                except Exception:
                    logger.exception("publish to user stream failed userID=%s", sub.user_id)
        else:
            logger.warning(
                "unknown room type, skipping fan-out type=%s roomID=%s", room.type, room.id
            )


class MongoRoomLookup:
    """RoomLookup backed by MongoDB collections of rooms and subscriptions."""

    def __init__(self, room_col: Any, sub_col: Any) -> None:
        self.room_col = room_col
        self.sub_col = sub_col

    def get_room(self, room_id: str) -> Room:
        doc = self.room_col.find_one({"_id": room_id})
        if doc is None:
            raise NotFoundError(f"room {room_id!r} not found")
        return from_document(Room, doc)

    def list_subscriptions(self, room_id: str) -> list[Subscription]:
        return [from_document(Subscription, doc) for doc in self.sub_col.find({"roomId": room_id})]