"""Room worker: applies authorized invites and notifies the affected users."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from . import subject
from .errors import ChatError, NotFoundError
from .model import (
    InviteMemberRequest,
    OutboxEvent,
    Role,
    Room,
    RoomMetadataUpdateEvent,
    Subscription,
    SubscriptionUpdateEvent,
    from_document,
    from_json,
    to_document,
    to_json,
)

logger = logging.getLogger(__name__)

PublishFn = Callable[[str, bytes], Any]


class SubscriptionStore(Protocol):
    """Persistence operations for the room worker."""

    def create_subscription(self, sub: Subscription) -> None: ...

    def list_by_room(self, room_id: str) -> list[Subscription]: ...

    def increment_user_count(self, room_id: str) -> None: ...

    def get_room(self, room_id: str) -> Room: ...


class RoomWorker:
    """Processes invite requests from the per-site rooms stream."""

    def __init__(self, store: SubscriptionStore, site_id: str, publish: PublishFn) -> None:
        self.store = store
        self.site_id = site_id
        self.publish = publish

    def handle_jetstream_msg(self, msg: Any) -> None:
        """Process a stream message with ``data`` and ``ack()``; it is always acknowledged."""
        try:
            self.process_invite(msg.data)
        except ChatError:
            logger.exception("process invite failed")
        try:
            msg.ack()
        except Exception:
            logger.exception("failed to ack message")

    def _publish(self, subj: str, data: bytes, failure: str) -> None:
        try:
            self.publish(subj, data)
        except Exception:
            logger.exception("%s subject=%s", failure, subj)

    def process_invite(self, data: bytes | str) -> None:
        """Subscribe the invitee, bump the member count and publish the resulting events."""
        try:
            req = from_json(InviteMemberRequest, data)
        except ValueError as exc:
            raise ChatError(f"unmarshal invite: {exc}") from exc

        now = datetime.now(timezone.utc)
        sub = Subscription(
            id=str(uuid.uuid4()),
            user_id=req.invitee_id,
            room_id=req.room_id,
            site_id=req.site_id,
            role=Role.MEMBER,
            shared_history_since=now,
            joined_at=now,
        )
        try:
            self.store.create_subscription(sub)
        except Exception as exc:
            raise ChatError(f"create subscription: {exc}") from exc

        try:
            self.store.increment_user_count(req.room_id)
        except Exception:
            logger.warning("increment user count failed roomID=%s", req.room_id, exc_info=True)

        if req.site_id != self.site_id:
            payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
            outbox_evt = OutboxEvent(
                type="member_added",
                site_id=self.site_id,
                dest_site_id=req.site_id,
                payload=payload,
            )
            self._publish(
                subject.outbox(self.site_id, req.site_id, "member_added"),
                to_json(outbox_evt),
                "outbox publish failed",
            )

        update = SubscriptionUpdateEvent(user_id=req.invitee_id, subscription=sub, action="added")
        self._publish(
            subject.subscription_update(req.invitee_id),
            to_json(update),
            "subscription update publish failed",
        )

        try:
            room = self.store.get_room(req.room_id)
        except Exception:
            return
        meta = RoomMetadataUpdateEvent(
            room_id=req.room_id, name=room.name, user_count=room.user_count, updated_at=now
        )
        meta_data = to_json(meta)
        try:
            members = self.store.list_by_room(req.room_id)
        except Exception:
            members = []
        for member in members:
            self._publish(
                subject.room_metadata_changed(member.user_id),
                meta_data,
                "room metadata publish failed",
            )


class MongoSubscriptionStore:
    """SubscriptionStore backed by the ``subscriptions`` and ``rooms`` collections."""

    def __init__(self, db: Any) -> None:
        self.subscriptions = db["subscriptions"]
        self.rooms = db["rooms"]

    def create_subscription(self, sub: Subscription) -> None:
        self.subscriptions.insert_one(to_document(sub))

    def list_by_room(self, room_id: str) -> list[Subscription]:
        return [from_document(Subscription, d) for d in self.subscriptions.find({"roomId": room_id})]

    def increment_user_count(self, room_id: str) -> None:
        self.rooms.update_one({"_id": room_id}, {"$inc": {"userCount": 1}})

    def get_room(self, room_id: str) -> Room:
        doc = self.rooms.find_one({"_id": room_id})
        if doc is None:
            raise NotFoundError(f'room "{room_id}" not found')
        return from_document(Room, doc)