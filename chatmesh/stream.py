"""Stream configurations for each site."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StreamConfig:
    """Name and subject filters of a persistent stream."""

    name: str
    subjects: tuple[str, ...] = ()


def messages(site_id: str) -> StreamConfig:
    return StreamConfig(f"MESSAGES_{site_id}", (f"chat.user.*.room.*.{site_id}.msg.>",))


def fanout(site_id: str) -> StreamConfig:
    return StreamConfig(f"FANOUT_{site_id}", (f"fanout.{site_id}.>",))


def rooms(site_id: str) -> StreamConfig:
    return StreamConfig(f"ROOMS_{site_id}", (f"chat.user.*.request.room.*.{site_id}.member.>",))


def outbox(site_id: str) -> StreamConfig:
    return StreamConfig(f"OUTBOX_{site_id}", (f"outbox.{site_id}.>",))


def inbox(site_id: str) -> StreamConfig:
    """The inbox stream is fed from other sites' outboxes and has no local subjects."""
    return StreamConfig(f"INBOX_{site_id}")