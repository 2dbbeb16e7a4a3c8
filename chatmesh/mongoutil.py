"""Connecting to and disconnecting from MongoDB."""

from __future__ import annotations

import logging

import pymongo
from pymongo.errors import PyMongoError

from .errors import ChatError

logger = logging.getLogger(__name__)


def connect(uri: str) -> pymongo.MongoClient:
    """Open a client for ``uri`` and check the server answers a ping."""
    try:
        client = pymongo.MongoClient(uri)
    except PyMongoError as exc:
        raise ChatError(f"mongo connect: {exc}") from exc
    try:
        client.admin.command("ping")
    except PyMongoError as exc:
        client.close()
        raise ChatError(f"mongo ping: {exc}") from exc
    logger.info("connected to MongoDB uri=%s", uri)
    return client


def disconnect(client: pymongo.MongoClient) -> None:
    """Close the client, logging rather than raising on failure."""
    try:
        client.close()
    except PyMongoError:
        logger.exception("mongo disconnect failed")