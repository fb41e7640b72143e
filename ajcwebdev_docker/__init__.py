"""A tiny HTTP server built to be containerized and deployed."""

from ajcwebdev_docker.errors import BindError, NotFoundError, ServerError
from ajcwebdev_docker.server import Server, ServerState

__all__ = ["BindError", "NotFoundError", "Server", "ServerError", "ServerState"]
