"""Message worker: validates, stores and fans out messages sent by users."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from . import subject
from .errors import ChatError
from .model import Message, MessageEvent, SendMessageRequest, Subscription, from_json, to_json

logger = logging.getLogger(__name__)

PublishFn = Callable[[str, bytes], Any]


class MessageStore(Protocol):
    """Persistence operations for the message worker."""

    def get_subscription(self, user_id: str, room_id: str) -> Subscription: ...

    def save_message(self, msg: Message) -> None: ...

    def update_room_last_message(self, room_id: str, at: datetime) -> None: ...


def get_request_id(data: bytes | str) -> str:
    """Return the request id of a send request, or an empty string if it cannot be read."""
    try:
        return from_json(SendMessageRequest, data).request_id
    except ValueError:
        return ""


def _ack(msg: Any) -> None:
    try:
        msg.ack()
    except Exception:
        logger.exception("failed to ack message")


class MessageHandler:
    """Handles messages from the per-site messages stream."""

    def __init__(self, store: MessageStore, site_id: str, publish: PublishFn) -> None:
        self.store = store
        self.site_id = site_id
        self.publish = publish

    def handle_jetstream_msg(self, msg: Any) -> None:
        """Process a stream message with ``subject``, ``data`` and ``ack()``.

        The message is always acknowledged, whether or not processing succeeds.
        """
        parts = msg.subject.split(".")
        if len(parts) < 7:
            logger.warning("invalid subject subject=%s", msg.subject)
            _ack(msg)
            return
        user_id, room_id, site_id = parts[2], parts[4], parts[5]

        try:
            reply = self.process_message(user_id, room_id, site_id, msg.data)
        except ChatError:
            logger.exception("process message failed userID=%s roomID=%s", user_id, room_id)
            _ack(msg)
            return

        request_id = get_request_id(msg.data)
        if request_id:
            resp_subj = subject.user_response(user_id, request_id)
            try:
                self.publish(resp_subj, reply)
            except Exception:
                logger.exception("reply publish failed subject=%s", resp_subj)

        _ack(msg)

    def process_message(self, user_id: str, room_id: str, site_id: str, data: bytes | str) -> bytes:
        """Store a message from a subscribed user, publish its fanout event, return it as JSON."""
        try:
            req = from_json(SendMessageRequest, data)
        except ValueError as exc:
            raise ChatError(f"unmarshal: {exc}") from exc

        try:
            self.store.get_subscription(user_id, room_id)
        except Exception as exc:
            raise ChatError(f"not subscribed: {exc}") from exc

        now = datetime.now(timezone.utc)
        msg = Message(
            id=str(uuid.uuid4()),
            room_id=room_id,
            user_id=user_id,
            content=req.content,
            created_at=now,
        )

        try:
            self.store.save_message(msg)
        except Exception as exc:
            raise ChatError(f"save message: {exc}") from exc
        try:
            self.store.update_room_last_message(room_id, now)
        except Exception:
            logger.warning("update room last message failed roomID=%s", room_id, exc_info=True)

        evt = MessageEvent(message=msg, room_id=room_id, site_id=site_id)
        fanout_subj = subject.fanout(site_id, room_id, msg.id)
        try:
            self.publish(fanout_subj, to_json(evt))
        except Exception:
            logger.exception("fanout publish failed subject=%s", fanout_subj)

        return to_json(msg)