"""Inbox worker: applies cross-site events arriving from other sites' outboxes."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from . import subject
from .broadcast import Publisher
from .errors import ChatError
from .model import (
    InviteMemberRequest,
    OutboxEvent,
    Role,
    Room,
    Subscription,
    SubscriptionUpdateEvent,
    from_json,
    to_document,
)
from .replies import marshal_response

logger = logging.getLogger(__name__)

__all__ = ["InboxHandler", "InboxStore", "MongoInboxStore", "Publisher"]


class InboxStore(Protocol):
    """Data store operations needed by the inbox worker."""

    def create_subscription(self, sub: Subscription) -> None: ...

    def upsert_room(self, room: Room) -> None: ...


class InboxHandler:
    """Processes incoming cross-site outbox events."""

    def __init__(self, store: InboxStore, pub: Publisher) -> None:
        self.store = store
        self.pub = pub

    def handle_event(self, data: bytes | str) -> None:
        """Handle one outbox payload; raises ChatError if it cannot be processed.

        Unknown event types are logged and skipped so they are not retried.
        """
        try:
            evt = from_json(OutboxEvent, data)
        except ValueError as exc:
            raise ChatError(f"unmarshal outbox event: {exc}") from exc

        if evt.type == "member_added":
            self._handle_member_added(evt)
        elif evt.type == "room_sync":
            self._handle_room_sync(evt)
        else:
            logger.warning("unknown event type, skipping type=%s", evt.type)

    def _handle_member_added(self, evt: OutboxEvent) -> None:
        try:
            invite = from_json(InviteMemberRequest, evt.payload)
        except ValueError as exc:
            raise ChatError(f"unmarshal member_added payload: {exc}") from exc

        now = datetime.now(timezone.utc)
        sub = Subscription(
            id=str(uuid.uuid4()),
            user_id=invite.invitee_id,
            room_id=invite.room_id,
            site_id=invite.site_id,
            role=Role.MEMBER,
            shared_history_since=now,
            joined_at=now,
        )
        try:
            self.store.create_subscription(sub)
        except Exception as exc:
            raise ChatError(f"create subscription: {exc}") from exc

        update = SubscriptionUpdateEvent(user_id=invite.invitee_id, subscription=sub, action="added")
        try:
            update_data = marshal_response(update)
        except (TypeError, ValueError) as exc:
            raise ChatError(f"marshal subscription update event: {exc}") from exc

        try:
            self.pub.publish(subject.subscription_update(invite.invitee_id), update_data)
        except Exception:
            logger.exception("publish subscription update failed userID=%s", invite.invitee_id)

    def _handle_room_sync(self, evt: OutboxEvent) -> None:
        try:
            room = from_json(Room, evt.payload)
        except ValueError as exc:
            raise ChatError(f"unmarshal room_sync payload: {exc}") from exc
        try:
            self.store.upsert_room(room)
        except Exception as exc:
            raise ChatError(f"upsert room: {exc}") from exc


class MongoInboxStore:
    """InboxStore backed by MongoDB collections of subscriptions and rooms."""

    def __init__(self, sub_col: Any, room_col: Any) -> None:
        self.sub_col = sub_col
        self.room_col = room_col

    def create_subscription(self, sub: Subscription) -> None:
        self.sub_col.insert_one(to_document(sub))

    def upsert_room(self, room: Room) -> None:
        self.room_col.update_one({"_id": room.id}, {"$set": to_document(room)}, upsert=True)