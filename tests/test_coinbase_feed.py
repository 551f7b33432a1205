import json
import queue
from datetime import datetime, timezone

import pytest
from websockets.exceptions import ConnectionClosedOK

from tickerflow.coinbase_feed import (
    COINBASE_URL,
    Channel,
    CoinbaseError,
    Heartbeat,
    HeartbeatReceived,
    Subscriptions,
    connect,
    feed_url,
    parse_packet,
    process_messages,
    run,
    subscribe_message,
)
from tickerflow.models import Datasource, Insert, SymbolCoinbase, SymbolCommon, TickerCoinbase

TICKER = (
    '{"type":"ticker","sequence":68163111365,"product_id":"BTC-USD","price":"36685.01",'
    '"open_24h":"35799.36","volume_24h":"29062.82961427","low_24h":"35555.16",'
    '"high_24h":"37999","volume_30d":"414208.58541546","best_bid":"36685.01",'
    '"best_bid_size":"0.06260238","best_ask":"36688.09","best_ask_size":"0.08893378",'
    '"side":"sell","time":"2023-11-09T22:16:05.023729Z","trade_id":576024484,'
    '"last_size":"0.00009645"}'
)
SUBSCRIPTIONS = '{"type":"subscriptions","channels":[{"name":"ticker","product_ids":["BTC-USD"]}]}'


class FakeSocket:
    def __init__(self, messages):
        self.incoming = list(messages)
        self.sent = []

    def send(self, message):
        self.sent.append(message)

    def recv(self):
        if not self.incoming:
            raise ConnectionClosedOK(None, None)
        return self.incoming.pop(0)


def _drain(q):
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


def test_parse_ticker():
    packet = parse_packet(TICKER)
    assert packet == TickerCoinbase(
        dtg=datetime(2023, 11, 9, 22, 16, 5, 23729, tzinfo=timezone.utc),
        symbol=SymbolCoinbase.BTC_USD,
        price=36685.01,
    )


def test_parse_subscriptions():
    assert parse_packet(SUBSCRIPTIONS) == Subscriptions(
        channels=[Channel(name="ticker", product_ids=["BTC-USD"])]
    )


def test_parse_heartbeat():
    assert parse_packet('{"type":"heartbeat"}') == Heartbeat()


def test_parse_error_packet():
    packet = parse_packet(
        '{"type":"error","time":"2023-11-09T22:16:05.023729Z","message":"Failed"}'
    )
    assert isinstance(packet, CoinbaseError)
    assert packet.coinbase_type == "error"
    assert packet.message == "Failed"


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[1, 2]",
        '{"type":"l2update"}',
        '{"channels":[]}',
        '{"type":"subscriptions","channels":"ticker"}',
        '{"type":"ticker","product_id":"BTC-USD","price":"1"}',
    ],
)
def test_parse_rejects_bad_packets(text):
    with pytest.raises(ValueError):
        parse_packet(text)


def test_subscribe_message_lists_all_products():
    assert subscribe_message() == {
        "type": "subscribe",
        "product_ids": ["BTC-USD", "ETH-USD", "ETH-BTC"],
        "channels": ["ticker"],
    }


def test_feed_url_default(monkeypatch):
    monkeypatch.delenv("COINBASE_URL", raising=False)
    assert feed_url() == COINBASE_URL == "wss://ws-feed.exchange.coinbase.com"


def test_feed_url_from_environment(monkeypatch):
    monkeypatch.setenv("COINBASE_URL", "ws://localhost:9001/feed")
    assert feed_url() == "ws://localhost:9001/feed"


def test_process_messages_subscribes_and_forwards_tickers():
    ws = FakeSocket([SUBSCRIPTIONS, TICKER, "garbage", b"\x00\x01", TICKER])
    q = queue.Queue()
    process_messages(ws, q)
    assert [json.loads(m) for m in ws.sent] == [subscribe_message()]
    items = _drain(q)
    assert len(items) == 2
    first = items[0]
    assert isinstance(first, Insert)
    assert first.source is Datasource.COINBASE
    assert first.ticker.symbol is SymbolCommon.BTC_USD
    assert first.ticker.price == 36685.01


def test_process_messages_returns_when_closed_immediately():
    ws = FakeSocket([])
    q = queue.Queue()
    process_messages(ws, q)
    assert len(ws.sent) == 1
    assert q.empty()


def test_process_messages_raises_on_heartbeat():
    ws = FakeSocket([TICKER, '{"type":"heartbeat"}', TICKER])
    q = queue.Queue()
    with pytest.raises(HeartbeatReceived):
        process_messages(ws, q)
    assert len(_drain(q)) == 1
    assert ws.incoming == [TICKER]


def test_connect_fails_when_nothing_listens(monkeypatch):
    monkeypatch.setenv("COINBASE_URL", "ws://127.0.0.1:1/")
    with pytest.raises(OSError):
        connect(queue.Queue())


def test_run_thread_ends_when_connection_fails(monkeypatch):
    monkeypatch.setenv("COINBASE_URL", "ws://127.0.0.1:1/")
    q = queue.Queue()
    thread = run(q)
    thread.join(timeout=10)
    assert not thread.is_alive()
    assert q.empty()