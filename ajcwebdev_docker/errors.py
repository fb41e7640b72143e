# ajcwebdev_docker/errors.py
from __future__ import annotations


class ServerError(Exception):
    """Base class for errors raised by the server."""


class BindError(ServerError):
    """The configured address could not be bound (port in use, bad host, no permission)."""

    def __init__(self, host: str, port: int, cause: OSError):
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(f"cannot bind {host}:{port}: {cause}")


class NotFoundError(ServerError):
    """No route matches the request. Surfaced to the client as a 404."""

    def __init__(self, method: str, path: str):
        self.method = method
        self.path = path
        super().__init__(f"no route for {method} {path}")


class LoopExitedError(ServerError):
    """The http loop stopped on its own while the server was supposed to be listening."""
