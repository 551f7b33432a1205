import queue
import threading
import time

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from tickerflow.broadcast_server import BroadcastServer
from tickerflow.commands import Broadcast, Shutdown, StartPing


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def running():
    server = BroadcastServer(port=0, shutdown_delay=0)
    commands = queue.Queue()
    thread = threading.Thread(target=server.run, args=(commands,), daemon=True)
    thread.start()
    assert server.ready.wait(5)
    yield server, commands, thread
    server.stop()
    thread.join(5)


def _url(server):
    host, port = server.address
    return f"ws://{host}:{port}/socket"


def test_text_is_echoed(running):
    server, _, _ = running
    with connect(_url(server)) as ws:
        ws.send("hello")
        assert ws.recv(timeout=5) == "server rcvd: hello"


def test_broadcast_command_reaches_client(running):
    server, commands, _ = running
    with connect(_url(server)) as ws:
        assert _wait_for(lambda: server.client_count() == 1)
        commands.put(Broadcast("hello from test: 0"))
        assert ws.recv(timeout=5) == "hello from test: 0"


def test_broadcast_counts_every_client(running):
    server, _, _ = running
    with connect(_url(server)) as first, connect(_url(server)) as second:
        assert _wait_for(lambda: server.client_count() == 2)
        assert server.broadcast("tick") == 2
        assert first.recv(timeout=5) == "tick"
        assert second.recv(timeout=5) == "tick"


def test_disconnect_removes_client(running):
    server, _, _ = running
    ws = connect(_url(server))
    _wait_for(lambda: server.client_count() == 1)
    assert server.client_count() == 1
    ws.close()
    _wait_for(lambda: server.client_count() == 0)
    assert server.client_count() == 0


def test_shutdown_command_closes_clients_normally(running):
    server, commands, _ = running
    with connect(_url(server)) as ws:
        assert _wait_for(lambda: server.client_count() == 1)
        commands.put(Shutdown())
        with pytest.raises(ConnectionClosed) as excinfo:
            ws.recv(timeout=5)
    assert excinfo.value.rcvd.code == 1000


def test_stop_ends_run(running):
    server, _, thread = running
    server.stop()
    thread.join(5)
    assert not thread.is_alive()


def test_handle_command_results_without_clients():
    server = BroadcastServer(port=0, shutdown_delay=0)
    assert server.handle_command(StartPing()) is True
    assert server.handle_command(Broadcast("nobody")) is True
    assert server.handle_command(Shutdown()) is False


def test_broadcast_without_clients_delivers_nothing():
    server = BroadcastServer(port=0)
    assert server.broadcast("nobody listening") == 0
    assert server.client_count() == 0


def test_stop_before_run_returns_immediately():
    server = BroadcastServer(port=0)
    server.stop()
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    thread.join(5)
    assert not thread.is_alive()
    assert not server.ready.is_set()