# ajcwebdev_docker/server.py
"""
Server lifecycle: CREATED -> LISTENING -> STOPPED.

The listening socket is bound in start() on the caller's thread so a bind
failure surfaces immediately as BindError. Requests are then served by a
uvicorn event loop on a background thread owned by the instance. stop()
asks that loop to exit; uvicorn stops accepting, gives in-flight requests
GRACE_PERIOD_SECONDS to finish, then closes what is left.

Shutdown is driven by an explicit threading.Event handed to serve(); the
process entry point is the only place that maps OS signals onto it.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from enum import Enum

import uvicorn
from fastapi import FastAPI

from ajcwebdev_docker.config import Settings
from ajcwebdev_docker.errors import BindError, LoopExitedError
from ajcwebdev_docker.metrics import start_metrics_server
from ajcwebdev_docker.observability import setup_json_logging
from ajcwebdev_docker.web import create_app

STARTUP_POLL_SECONDS = 0.01
STARTUP_TIMEOUT_SECONDS = 10.0
# Extra time on top of the grace period for uvicorn to tear its loop down
SHUTDOWN_MARGIN_SECONDS = 1.0


class ServerState(str, Enum):
    CREATED = "created"
    LISTENING = "listening"
    STOPPED = "stopped"


def bind_socket(host: str, port: int, backlog: int) -> socket.socket:
    """Bind and listen on (host, port). Raises OSError on failure."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        # Listen right away: a bound but idle socket would not block a second bind
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


class Server:
    def __init__(
        self,
        settings: Settings | None = None,
        app: FastAPI | None = None,
        logger: logging.Logger | None = None,
    ):
        self.settings = settings or Settings()
        self.log = logger or setup_json_logging(level=self.settings.LOG_LEVEL)
        self.app = app or create_app(self.settings, logger=self.log)

        self.state = ServerState.CREATED
        self.error: BindError | None = None
        self.host = self.settings.HOST
        self.port = self.settings.PORT

        self._lock = threading.Lock()
        self._socket: socket.socket | None = None
        self._uvicorn: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._metrics = None

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port

    @property
    def is_listening(self) -> bool:
        return self.state is ServerState.LISTENING

    def start(self) -> None:
        with self._lock:
            if self.state is not ServerState.CREATED:
                raise RuntimeError(f"server cannot start from state {self.state.value!r}")

            if self.settings.METRICS_PORT:
                self._metrics = self._bind(
                    self.settings.METRICS_PORT,
                    lambda: start_metrics_server(self.host, self.settings.METRICS_PORT),
                )

            self._socket = self._bind(
                self.port, lambda: bind_socket(self.host, self.port, self.settings.BACKLOG)
            )
            self.port = self._socket.getsockname()[1]

            config = uvicorn.Config(
                self.app,
                host=self.host,
                port=self.port,
                lifespan="off",
                log_config=None,
                access_log=False,
                backlog=self.settings.BACKLOG,
                timeout_graceful_shutdown=self.settings.GRACE_PERIOD_SECONDS,
            )
            self._uvicorn = uvicorn.Server(config)
            self._thread = threading.Thread(
                target=self._uvicorn.run,
                kwargs={"sockets": [self._socket]},
                name="ajcwebdev-docker-http",
                daemon=True,
            )
            self._thread.start()
            self._wait_started()

            self.state = ServerState.LISTENING
            self.log.info("listening", extra={"host": self.host, "port": self.port})

    def _bind(self, port: int, bind):
        try:
            return bind()
        except OSError as e:
            self.error = BindError(self.host, port, e)
            self.state = ServerState.STOPPED
            self._release()
            self.log.error("bind_failed", extra={"host": self.host, "port": port, "error": str(e)})
            raise self.error from e

    def _wait_started(self) -> None:
        deadline = time.monotonic() + STARTUP_TIMEOUT_SECONDS
        while not self._uvicorn.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self._uvicorn.should_exit = True
                self.state = ServerState.STOPPED
                self._release()
                raise RuntimeError("http loop failed to start")
            time.sleep(STARTUP_POLL_SECONDS)

    def stop(self) -> None:
        """Stop accepting, drain in-flight requests, release the socket. No-op unless listening."""
        with self._lock:
            if self.state is not ServerState.LISTENING:
                return

            grace = self.settings.GRACE_PERIOD_SECONDS
            self.log.info(
                "stopping", extra={"host": self.host, "port": self.port, "grace_s": grace}
            )
            self._uvicorn.should_exit = True
            self._thread.join(grace + SHUTDOWN_MARGIN_SECONDS)
            if self._thread.is_alive():
                self.log.warning("forced_shutdown", extra={"grace_s": grace})
                self._uvicorn.force_exit = True
                self._thread.join(SHUTDOWN_MARGIN_SECONDS)

            self._release()
            self.state = ServerState.STOPPED
            self.log.info("stopped", extra={"host": self.host, "port": self.port})

    def _release(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        if self._metrics is not None:
            self._metrics.shutdown()
            self._metrics.server_close()
            self._metrics = None

    def serve(self, cancel: threading.Event, poll_seconds: float = 0.5) -> None:
        """
        Start, block until `cancel` is set, then stop.

        Raises LoopExitedError if the http loop dies before `cancel` is set.
        """
        self.start()
        try:
            while not cancel.wait(poll_seconds):
                if not self._thread.is_alive():
                    self.log.error("loop_exited", extra={"host": self.host, "port": self.port})
                    raise LoopExitedError(f"http loop on {self.host}:{self.port} exited")
        finally:
            self.stop()
