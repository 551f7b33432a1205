"""Websocket client for the broadcast server, steered by commands."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from tickerflow.commands import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    SHUTDOWN_DELAY,
    Shutdown,
    StartPing,
)

logger = logging.getLogger(__name__)

DEFAULT_URL = f"ws://{DEFAULT_HOST}:{DEFAULT_PORT}/socket"
PING_COUNT = 100
PING_INTERVAL = 1.0

_COMMAND_POLL = 0.05
_NORMAL_CLOSURE = 1000


class BroadcastClient:
    """Connect on creation; read broadcasts with ``run``.

    Commands put on ``commands`` start pings or shut the connection down.
    """

    def __init__(
        self,
        commands: Optional[queue.Queue] = None,
        url: str = DEFAULT_URL,
        ping_count: int = PING_COUNT,
        ping_interval: float = PING_INTERVAL,
        shutdown_delay: float = SHUTDOWN_DELAY,
    ) -> None:
        self._ping_count = ping_count
        self._ping_interval = ping_interval
        self._shutdown_delay = shutdown_delay
        self._received: list[str] = []
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._ws = connect(url)
        logger.debug("[client] connected to %s", url)
        if commands is not None:
            threading.Thread(
                target=self._control, args=(commands,), name="client-control", daemon=True
            ).start()

    def run(self) -> None:
        """Read from the server until the connection closes."""
        logger.debug("[client] starting read loop...")
        try:
            for message in self._ws:
                if isinstance(message, str):
                    logger.info("[client::text] rcvd: %s", message)
                    with self._lock:
                        self._received.append(message)
        except ConnectionClosed as exc:
            logger.error("[client] connection closed: %s", exc)
        finally:
            self._closed.set()

    def ping(self, count: Optional[int] = None, interval: Optional[float] = None) -> int:
        """Send up to ``count`` pings ``interval`` seconds apart; return how many went out."""
        count = self._ping_count if count is None else count
        interval = self._ping_interval if interval is None else interval
        logger.debug("[client] sending %d pings", count)
        sent = 0
        for number in range(count):
            logger.debug("[client] sending ping: %d", number)
            try:
                self._ws.ping()
            except ConnectionClosed as exc:
                logger.error("[client] send error, stopping pings: %s", exc)
                break
            sent += 1
            if number + 1 < count and self._closed.wait(interval):
                break
        return sent

    def shutdown(self, delay: Optional[float] = None) -> None:
        """Close the connection normally after ``delay`` seconds."""
        delay = self._shutdown_delay if delay is None else delay
        logger.error("[client] closing client websocket in %s seconds", delay)
        self._closed.wait(delay)
        try:
            self._ws.close(code=_NORMAL_CLOSURE)
        except ConnectionClosed as exc:
            logger.debug("[client] close error: %s", exc)
        self._closed.set()

    def received(self) -> list[str]:
        """Text messages received so far, oldest first."""
        with self._lock:
            return list(self._received)

    def _control(self, commands: queue.Queue) -> None:
        pingers: list[threading.Thread] = []
        while not self._closed.is_set():
            try:
                command = commands.get(timeout=_COMMAND_POLL)
            except queue.Empty:
                continue
            logger.debug("[client::control_comms] %s", command)
            if isinstance(command, Shutdown):
                self.shutdown()
                break
            if isinstance(command, StartPing):
                pinger = threading.Thread(target=self.ping, name="client-ping", daemon=True)
                pinger.start()
                pingers.append(pinger)
        for pinger in pingers:
            pinger.join()