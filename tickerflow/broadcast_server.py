"""Websocket server that pushes broadcast messages to all connected clients."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import serve

from tickerflow.commands import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    SHUTDOWN_DELAY,
    Broadcast,
    Shutdown,
)

logger = logging.getLogger(__name__)

_COMMAND_POLL = 0.05
_NORMAL_CLOSURE = 1000


class BroadcastServer:
    """Accept websocket clients, echo their text and broadcast on command."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        shutdown_delay: float = SHUTDOWN_DELAY,
    ) -> None:
        self._host = host
        self._port = port
        self._shutdown_delay = shutdown_delay
        self._clients: list[Any] = []
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._server: Any = None
        self.address: Optional[tuple[str, int]] = None
        self.ready = threading.Event()

    def run(self, commands: Optional[queue.Queue] = None) -> None:
        """Listen and serve clients until ``stop`` is called.

        Commands read from ``commands`` are handled on a separate thread.
        """
        control: Optional[threading.Thread] = None
        with serve(self._serve_client, self._host, self._port) as server:
            with self._lock:
                if self._stopping.is_set():
                    return
                self._server = server
                host, port = server.socket.getsockname()[:2]
                self.address = (host, port)
            if commands is not None:
                control = threading.Thread(
                    target=self._control, args=(commands,), name="server-control", daemon=True
                )
                control.start()
            logger.debug("[server] listening on %s:%s", host, port)
            self.ready.set()
            server.serve_forever()
        if control is not None:
            control.join()

    def handle_command(self, command: Any) -> bool:
        """Act on one command; return False once no more should be read."""
        if isinstance(command, Shutdown):
            self._shutdown_clients()
            return False
        if isinstance(command, Broadcast):
            self.broadcast(command.message)
        return True

    def broadcast(self, message: str) -> int:
        """Send ``message`` to every client; return how many received it."""
        delivered = 0
        for client in self._snapshot():
            try:
                client.send(message)
            except ConnectionClosed as exc:
                logger.error("[send_broadcast] send error: %s", exc)
            else:
                delivered += 1
        return delivered

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def stop(self) -> None:
        """Stop listening and close every client connection."""
        with self._lock:
            self._stopping.set()
            server = self._server
        if server is not None:
            server.shutdown()
        self._close_clients()

    def _snapshot(self) -> list[Any]:
        with self._lock:
            return list(self._clients)

    def _serve_client(self, ws: Any) -> None:
        with self._lock:
            self._clients.append(ws)
        try:
            for message in ws:
                if not isinstance(message, str):
                    continue
                logger.info("[server] received text: %s", message)
                try:
                    ws.send(f"server rcvd: {message}")
                except ConnectionClosed as exc:
                    logger.error("[server] send after close: %s", exc)
                    break
        except ConnectionClosed as exc:
            logger.debug("[server] client closed: %s", exc)
        finally:
            with self._lock:
                if ws in self._clients:
                    self._clients.remove(ws)

    def _control(self, commands: queue.Queue) -> None:
        while not self._stopping.is_set():
            try:
                command = commands.get(timeout=_COMMAND_POLL)
            except queue.Empty:
                continue
            logger.debug("[server::control_comms] %s", command)
            if not self.handle_command(command):
                break

    def _shutdown_clients(self) -> None:
        logger.error("[server] closing in %s seconds", self._shutdown_delay)
        self._stopping.wait(self._shutdown_delay)
        logger.error("[server] closing...")
        self._close_clients()

    def _close_clients(self) -> None:
        for client in self._snapshot():
            try:
                client.close(code=_NORMAL_CLOSURE)
            except ConnectionClosed as exc:
                logger.debug("[server] close error: %s", exc)