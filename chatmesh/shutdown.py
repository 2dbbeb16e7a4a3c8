"""Graceful shutdown on SIGINT or SIGTERM."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_POLL_INTERVAL = 0.05


def _run_all(funcs: tuple[Callable[[threading.Event], Any], ...], expired: threading.Event) -> None:
    for func in funcs:
        try:
            func(expired)
        except Exception:
            logger.exception("shutdown error")


def wait(timeout: float, *args: Callable[[threading.Event], Any]) -> None:
    """Block until SIGINT or SIGTERM, then call each function in ``args`` in order.

    Each function receives an event that is set once ``timeout`` seconds have
    passed. If the functions have not all finished by then, a warning is
    logged and this returns without waiting further.
    """
    received = threading.Event()

    def _on_signal(signum: int, frame: Any) -> None:
        received.set()

    previous = {sig: signal.signal(sig, _on_signal) for sig in _SIGNALS}
    try:
        while not received.wait(_POLL_INTERVAL):
            pass
        logger.info("shutting down...")

        expired = threading.Event()
        worker = threading.Thread(
            target=_run_all, args=(args, expired), name="shutdown", daemon=True
        )
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            logger.warning("shutdown timed out, forcing exit")
        else:
            logger.info("shutdown complete")
        expired.set()
    finally:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)