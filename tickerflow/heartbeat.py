"""Periodic liveness messages for the store."""

from __future__ import annotations

import threading
from typing import Any, Optional

from tickerflow.models import Ping

PING_INTERVAL = 10.0


def start_heartbeat(
    tx: Any,
    interval: float = PING_INTERVAL,
    stop: Optional[threading.Event] = None,
) -> threading.Thread:
    """Put a ``Ping`` on ``tx`` now and then every ``interval`` seconds.

    ``tx`` is anything with a ``put`` method, such as ``queue.Queue``.
    Setting ``stop`` ends the thread.
    """
    stop_event = stop if stop is not None else threading.Event()

    def _beat() -> None:
        while not stop_event.is_set():
            tx.put(Ping())
            if stop_event.wait(interval):
                break

    thread = threading.Thread(target=_beat, name="heartbeat", daemon=True)
    thread.start()
    return thread