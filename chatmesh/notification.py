"""Notification worker: notifies room members of new messages."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from . import subject
from .broadcast import Publisher
from .errors import ChatError
from .model import MessageEvent, NotificationEvent, Subscription, from_document, from_json
from .replies import marshal_response

logger = logging.getLogger(__name__)

__all__ = ["MemberLookup", "MongoMemberLookup", "NotificationHandler", "Publisher"]


class MemberLookup(Protocol):
    """Reads room membership from a data store."""

    def list_subscriptions(self, room_id: str) -> list[Subscription]: ...


class NotificationHandler:
    """Sends a notification to every member of a room except the sender."""

    def __init__(self, members: MemberLookup, pub: Publisher) -> None:
        self.members = members
        self.pub = pub

    def handle_message(self, data: bytes | str) -> None:
        """Handle one fanout payload; raises ChatError if it cannot be processed."""
        try:
            evt = from_json(MessageEvent, data)
        except ValueError as exc:
            raise ChatError(f"unmarshal message event: {exc}") from exc

        try:
            subs = self.members.list_subscriptions(evt.room_id)
        except Exception as exc:
            raise ChatError(f"list subscriptions for room {evt.room_id}: {exc}") from exc

        notif = NotificationEvent(type="new_message", room_id=evt.room_id, message=evt.message)
        try:
            notif_data = marshal_response(notif)
        except (TypeError, ValueError) as exc:
            raise ChatError(f"marshal notification: {exc}") from exc

        sender_id = evt.message.user_id
        for sub in subs:
            if sub.user_id == sender_id:
                continue
            try:
                self.pub.publish(subject.notification(sub.user_id), notif_data)
            except Exception:
                logger.exception("publish notification failed userID=%s", sub.user_id)


class MongoMemberLookup:
    """MemberLookup backed by a MongoDB subscriptions collection."""

    def __init__(self, col: Any) -> None:
        self.col = col

    def list_subscriptions(self, room_id: str) -> list[Subscription]:
        return [from_document(Subscription, doc) for doc in self.col.find({"roomId": room_id})]