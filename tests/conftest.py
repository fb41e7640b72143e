import logging
import socket

import pytest

from ajcwebdev_docker.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(HOST="127.0.0.1", PORT=0, GRACE_PERIOD_SECONDS=2)


@pytest.fixture
def logger() -> logging.Logger:
    # Propagating logger so caplog sees lifecycle lines
    return logging.getLogger("tests.ajcwebdev_docker")


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
