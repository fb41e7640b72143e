import asyncio
import logging
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from ajcwebdev_docker.config import Settings
from ajcwebdev_docker.errors import BindError, LoopExitedError
from ajcwebdev_docker.server import Server, ServerState
from ajcwebdev_docker.web import create_app


def _url(server: Server, path: str = "/") -> str:
    host, port = server.address
    return f"http://{host}:{port}{path}"


@pytest.fixture
def server(settings, logger):
    srv = Server(settings, logger=logger)
    yield srv
    srv.stop()


def test_end_to_end(server):
    assert server.state is ServerState.CREATED
    server.start()
    assert server.state is ServerState.LISTENING
    assert server.port != 0

    r = httpx.get(_url(server))
    assert r.status_code == 200
    assert r.text == "<h2>ajcwebdev-docker</h2>"
    assert "text/html" in r.headers["content-type"]

    assert httpx.post(_url(server)).status_code == 404
    assert httpx.get(_url(server, "/nope")).status_code == 404

    server.stop()
    assert server.state is ServerState.STOPPED
    with pytest.raises(httpx.ConnectError):
        httpx.get(_url(server))


def test_startup_logs_host_and_port(server, caplog):
    caplog.set_level(logging.INFO, logger="tests.ajcwebdev_docker")
    server.start()
    records = [r for r in caplog.records if r.getMessage() == "listening"]
    assert len(records) == 1
    assert records[0].host == "127.0.0.1"
    assert records[0].port == server.port


def test_second_server_on_same_port_fails(server, logger):
    server.start()
    other = Server(
        Settings(HOST="127.0.0.1", PORT=server.port, GRACE_PERIOD_SECONDS=2), logger=logger
    )

    with pytest.raises(BindError) as excinfo:
        other.start()

    assert other.state is ServerState.STOPPED
    assert other.error is excinfo.value
    assert excinfo.value.port == server.port
    assert isinstance(excinfo.value.cause, OSError)
    # the first instance is unaffected
    assert httpx.get(_url(server)).status_code == 200


def test_unroutable_host_fails(logger):
    srv = Server(Settings(HOST="203.0.113.7", PORT=0), logger=logger)
    with pytest.raises(BindError):
        srv.start()
    assert srv.state is ServerState.STOPPED


def test_stop_before_start_is_noop(server):
    server.stop()
    assert server.state is ServerState.CREATED
    server.start()
    assert server.is_listening


def test_stop_twice_is_noop(server):
    server.start()
    server.stop()
    server.stop()
    assert server.state is ServerState.STOPPED


def test_instance_is_single_use(server):
    server.start()
    server.stop()
    with pytest.raises(RuntimeError):
        server.start()


def test_in_flight_request_completes_during_stop(settings, logger):
    app = create_app(settings, logger=logger)

    @app.get("/slow")
    async def slow():
        await asyncio.sleep(0.5)
        return {"done": True}

    srv = Server(settings, app=app, logger=logger)
    srv.start()
    with ThreadPoolExecutor(max_workers=1) as pool:
        pending = pool.submit(httpx.get, _url(srv, "/slow"), timeout=5)
        time.sleep(0.2)
        srv.stop()
        r = pending.result()

    assert r.status_code == 200
    assert r.json() == {"done": True}
    assert srv.state is ServerState.STOPPED


def test_serve_returns_when_cancelled(server):
    cancel = threading.Event()
    runner = threading.Thread(target=server.serve, args=(cancel,), kwargs={"poll_seconds": 0.05})
    runner.start()

    deadline = time.monotonic() + 5
    while not server.is_listening and time.monotonic() < deadline:
        time.sleep(0.01)
    assert httpx.get(_url(server)).status_code == 200

    cancel.set()
    runner.join(5)
    assert not runner.is_alive()
    assert server.state is ServerState.STOPPED


def test_metrics_served_on_separate_port(logger, free_port):
    srv = Server(Settings(HOST="127.0.0.1", PORT=0, METRICS_PORT=free_port), logger=logger)
    srv.start()
    try:
        assert httpx.get(_url(srv)).status_code == 200
        body = httpx.get(f"http://127.0.0.1:{free_port}/metrics").text
        assert "http_requests_total" in body
        assert 'path="/"' in body
    finally:
        srv.stop()

    with pytest.raises(httpx.ConnectError):
        httpx.get(f"http://127.0.0.1:{free_port}/metrics")


def test_malformed_request_gets_4xx_and_server_keeps_serving(server):
    server.start()
    with socket.create_connection(server.address, timeout=5) as conn:
        conn.sendall(b"GARBAGE\r\n\r\n")
        status_line = conn.recv(1024).split(b"\r\n", 1)[0]

    assert status_line.startswith(b"HTTP/1.1 4")
    assert server.is_listening
    assert httpx.get(_url(server)).status_code == 200


def test_serve_raises_when_http_loop_dies(server):
    cancel = threading.Event()
    errors = []

    def run():
        try:
            server.serve(cancel, poll_seconds=0.05)
        except LoopExitedError as e:
            errors.append(e)

    runner = threading.Thread(target=run)
    runner.start()
    deadline = time.monotonic() + 5
    while not server.is_listening and time.monotonic() < deadline:
        time.sleep(0.01)

    # take the loop down without going through stop() or the cancel event
    server._uvicorn.should_exit = True
    runner.join(5)

    assert not runner.is_alive()
    assert len(errors) == 1
    assert not cancel.is_set()
    assert server.state is ServerState.STOPPED
