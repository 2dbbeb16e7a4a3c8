"""Builders and parsers for the messaging subjects used by the chat services."""

from __future__ import annotations


def parse_user_room_subject(subj: str) -> tuple[str, str] | None:
    """Return ``(user_id, room_id)`` from ``chat.user.{user}.….room.{room}.…``, or None."""
    parts = subj.split(".")
    if len(parts) < 5 or parts[0] != "chat" or parts[1] != "user":
        return None
    user_id = parts[2]
    room_id = next((nxt for token, nxt in zip(parts[3:-1], parts[4:]) if token == "room"), None)
    if room_id is None:
        return None
    return user_id, room_id


def msg_send(user_id: str, room_id: str, site_id: str) -> str:
    return f"chat.user.{user_id}.room.{room_id}.{site_id}.msg.send"


def user_response(user_id: str, request_id: str) -> str:
    return f"chat.user.{user_id}.response.{request_id}"


def room_metadata_update(room_id: str) -> str:
    return f"chat.room.{room_id}.event.metadata.update"


def room_msg_stream(room_id: str) -> str:
    return f"chat.room.{room_id}.stream.msg"


def user_room_update(user_id: str) -> str:
    return f"chat.user.{user_id}.event.room.update"


def user_msg_stream(user_id: str) -> str:
    return f"chat.user.{user_id}.stream.msg"


def member_invite(user_id: str, room_id: str, site_id: str) -> str:
    return f"chat.user.{user_id}.request.room.{room_id}.{site_id}.member.invite"


def msg_history(user_id: str, room_id: str, site_id: str) -> str:
    return f"chat.user.{user_id}.request.room.{room_id}.{site_id}.msg.history"


def subscription_update(user_id: str) -> str:
    return f"chat.user.{user_id}.event.subscription.update"


def room_metadata_changed(user_id: str) -> str:
    return f"chat.user.{user_id}.event.room.metadata.update"


def notification(user_id: str) -> str:
    return f"chat.user.{user_id}.notification"


def outbox(site_id: str, dest_site_id: str, event_type: str) -> str:
    return f"outbox.{site_id}.to.{dest_site_id}.{event_type}"


def fanout(site_id: str, room_id: str, msg_id: str) -> str:
    return f"fanout.{site_id}.{room_id}.{msg_id}"


def msg_send_wildcard(site_id: str) -> str:
    return f"chat.user.*.room.*.{site_id}.msg.send"


def member_invite_wildcard(site_id: str) -> str:
    return f"chat.user.*.request.room.*.{site_id}.member.>"


def msg_history_wildcard(site_id: str) -> str:
    return f"chat.user.*.request.room.*.{site_id}.msg.history"


def fanout_wildcard(site_id: str) -> str:
    return f"fanout.{site_id}.>"


def outbox_wildcard(site_id: str) -> str:
    return f"outbox.{site_id}.>"