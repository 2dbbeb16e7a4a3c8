"""Request/reply helpers and a header carrier for trace propagation."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

from .model import ErrorResponse, to_json

logger = logging.getLogger(__name__)


class HeaderCarrier:
    """Text-map carrier over a mapping of header names to value lists."""

    def __init__(self, headers: MutableMapping[str, list[str]]) -> None:
        self._headers = headers

    def get(self, key: str) -> str:
        values = self._headers.get(key)
        return values[0] if values else ""

    def set(self, key: str, value: str) -> None:
        self._headers[key] = [value]

    def keys(self) -> list[str]:
        return list(self._headers)


def marshal_response(value: Any) -> bytes:
    """Encode a reply payload as JSON."""
    return to_json(value)


def marshal_error(message: str) -> bytes:
    """Encode an error reply ``{"error": message}``."""
    return to_json(ErrorResponse(error=message))


def _respond(msg: Any, data: bytes, failure: str) -> None:
    try:
        msg.respond(data)
    except Exception:
        logger.exception(failure)


def reply_json(msg: Any, value: Any) -> None:
    """Reply with ``value`` as JSON, or with an error reply if it cannot be encoded."""
    try:
        data = marshal_response(value)
    except (TypeError, ValueError) as exc:
        reply_error(msg, f"marshal error: {exc}")
        return
    _respond(msg, data, "reply failed")


def reply_error(msg: Any, message: str) -> None:
    """Reply with an error payload."""
    _respond(msg, marshal_error(message), "error reply failed")