"""Exceptions raised by chatmesh services."""


class ChatError(Exception):
    """Base error for chat service operations."""


class NotFoundError(ChatError):
    """A requested record does not exist."""