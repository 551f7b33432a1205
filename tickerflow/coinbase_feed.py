"""Coinbase ticker feed: subscribe, decode packets and forward tickers."""

from __future__ import annotations

import json
import logging
import os
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as _ws_connect

from tickerflow.models import (
    Datasource,
    Insert,
    SymbolCoinbase,
    TickerCoinbase,
    _parse_timestamp,
)

logger = logging.getLogger(__name__)

COINBASE_URL = "wss://ws-feed.exchange.coinbase.com"


@dataclass
class Channel:
    """A subscribed channel and its products."""

    name: str
    product_ids: list[str] = field(default_factory=list)


@dataclass
class Subscriptions:
    """Confirmation of the active subscriptions."""

    channels: list[Channel] = field(default_factory=list)


@dataclass(frozen=True)
class Heartbeat:
    """Heartbeat packet."""


@dataclass(frozen=True)
class CoinbaseError:
    """An error packet sent by the exchange."""

    dtg: datetime
    coinbase_type: str
    message: str


class HeartbeatReceived(RuntimeError):
    """A heartbeat arrived although none was subscribed to."""


Packet = Union[Subscriptions, Heartbeat, TickerCoinbase, CoinbaseError]


def _parse_subscriptions(data: dict[str, Any]) -> Subscriptions:
    raw_channels = data.get("channels")
    if not isinstance(raw_channels, list):
        raise ValueError("subscriptions: 'channels' must be a list")
    channels = []
    for raw in raw_channels:
        if not isinstance(raw, dict):
            raise ValueError("subscriptions: channel must be an object")
        name = raw.get("name")
        product_ids = raw.get("product_ids")
        if not isinstance(name, str):
            raise ValueError("subscriptions: channel 'name' must be a string")
        if not isinstance(product_ids, list) or not all(isinstance(p, str) for p in product_ids):
            raise ValueError("subscriptions: 'product_ids' must be a list of strings")
        channels.append(Channel(name=name, product_ids=list(product_ids)))
    return Subscriptions(channels=channels)


def _parse_error(data: dict[str, Any]) -> CoinbaseError:
    try:
        time_raw = data["time"]
        message = data["message"]
    except KeyError as exc:
        raise ValueError(f"error packet: missing field {exc.args[0]!r}") from None
    if not isinstance(message, str):
        raise ValueError("error packet: 'message' must be a string")
    return CoinbaseError(
        dtg=_parse_timestamp(time_raw), coinbase_type=data["type"], message=message
    )


def parse_packet(text: Union[str, bytes]) -> Packet:
    """Decode one feed message; raise ``ValueError`` if it is not understood."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("packet must be a JSON object")
    kind = data.get("type")
    if kind == "subscriptions":
        return _parse_subscriptions(data)
    if kind == "heartbeat":
        return Heartbeat()
    if kind == "ticker":
        return TickerCoinbase.from_json(data)
    if kind == "error":
        return _parse_error(data)
    raise ValueError(f"unknown packet type: {kind!r}")


def subscribe_message() -> dict[str, Any]:
    """Subscription request for the ticker channel of every known product."""
    return {
        "type": "subscribe",
        "product_ids": [symbol.to_string_coinbase() for symbol in SymbolCoinbase],
        "channels": ["ticker"],
    }


def feed_url() -> str:
    """Feed address from ``COINBASE_URL``, or the public Coinbase feed."""
    return os.environ.get("COINBASE_URL", COINBASE_URL)


def process_messages(ws: Any, tx_db: Any) -> None:
    """Subscribe on ``ws`` and forward every ticker to ``tx_db`` until it closes.

    ``ws`` needs ``send`` and ``recv``; ``tx_db`` needs ``put``.
    """
    try:
        ws.send(json.dumps(subscribe_message()))
    except ConnectionClosed as exc:
        logger.error("[ws_process] subscribe failed: %s", exc)

    while True:
        try:
            raw = ws.recv()
        except ConnectionClosed as exc:
            logger.error("[ws_process] error: %s", exc)
            return

        if not isinstance(raw, str):
            logger.error("[ws_process] non-text websocket data")
            continue

        try:
            packet = parse_packet(raw)
        except ValueError as exc:
            logger.error("[ws_process] parse error: %s, message: %s", exc, raw)
            continue

        if isinstance(packet, TickerCoinbase):
            try:
                tx_db.put(Insert(Datasource.COINBASE, packet.to_common()))
            except queue.Full as exc:
                logger.error("[ws_process] send error: %r", exc)
        elif isinstance(packet, Subscriptions):
            logger.debug("[Coinbase::Subscriptions] %s", packet)
        elif isinstance(packet, Heartbeat):
            logger.debug("[Coinbase::Heartbeat] %s", raw)
            raise HeartbeatReceived("unexpected heartbeat from the feed")
        else:
            logger.error("[ws_process] coinbase error: %s", packet)


def connect(tx_db: Any) -> None:
    """Open the feed and process its messages until the connection closes."""
    url = feed_url()
    logger.debug("[ws_connect] url: %s", url)
    with _ws_connect(url) as ws:
        process_messages(ws, tx_db)


def run(tx_db: Any) -> threading.Thread:
    """Start a thread that reads the feed into ``tx_db``."""
    logger.debug("[run] spawning websocket...")

    def _target() -> None:
        try:
            connect(tx_db)
        except Exception:
            logger.exception("[run] coinbase feed stopped")

    thread = threading.Thread(target=_target, name="coinbase-feed", daemon=True)
    thread.start()
    return thread