"""Commands passed between threads to the broadcast server and client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

SHUTDOWN_DELAY = 1.0
"""Seconds to wait before a ``Shutdown`` closes connections."""

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3012


@dataclass(frozen=True)
class Shutdown:
    """Close the websocket connection(s) after a short delay."""


@dataclass(frozen=True)
class StartPing:
    """Start sending a series of pings to the peer."""


@dataclass(frozen=True)
class Broadcast:
    """Send ``message`` as a text frame to every connected client."""

    message: str


Command = Union[Shutdown, StartPing, Broadcast]