"""History service: returns a room's message history to subscribed users."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from . import subject
from .errors import ChatError
from .model import (
    HistoryRequest,
    HistoryResponse,
    Message,
    Subscription,
    from_json,
    parse_time,
    to_json,
)
from .replies import reply_error

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


class HistoryStore(Protocol):
    """Reads subscriptions and stored messages."""

    def get_subscription(self, user_id: str, room_id: str) -> Subscription: ...

    def list_messages(
        self, room_id: str, since: datetime, before: datetime, limit: int
    ) -> list[Message]: ...


class HistoryHandler:
    """Answers message history requests."""

    def __init__(self, store: HistoryStore) -> None:
        self.store = store

    def on_history(self, msg: Any) -> None:
        """Reply to a request on ``chat.user.{user}.request.room.{room}.{site}.msg.history``."""
        parsed = subject.parse_user_room_subject(msg.subject)
        if parsed is None:
            reply_error(msg, "invalid subject")
            return
        user_id, room_id = parsed
        try:
            resp = self.handle_history(user_id, room_id, msg.data)
        except ChatError as exc:
            reply_error(msg, str(exc))
            return
        try:
            msg.respond(resp)
        except Exception:
            logger.exception("failed to respond to message")

    def handle_history(self, user_id: str, room_id: str, data: bytes | str) -> bytes:
        """Return up to ``limit`` messages since the user's history start, as JSON."""
        try:
            sub = self.store.get_subscription(user_id, room_id)
        except Exception as exc:
            raise ChatError(f"not subscribed: {exc}") from exc

        try:
            req = from_json(HistoryRequest, data)
        except ValueError as exc:
            raise ChatError(f"invalid request: {exc}") from exc

        since = sub.shared_history_since
        before = datetime.now(timezone.utc)
        if req.before:
            try:
                before = parse_time(req.before)
            except ValueError:
                pass

        limit = req.limit if req.limit > 0 else DEFAULT_LIMIT

        try:
            msgs = list(self.store.list_messages(room_id, since, before, limit + 1))
        except Exception as exc:
            raise ChatError(f"list messages: {exc}") from exc

        has_more = len(msgs) > limit
        if has_more:
            msgs = msgs[:limit]

        return to_json(HistoryResponse(messages=msgs, has_more=has_more))