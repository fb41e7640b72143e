# ajcwebdev_docker/__main__.py
"""
Process entry point: `python -m ajcwebdev_docker`.

Exit codes: 0 clean shutdown, 1 bind failure, 2 invalid configuration,
3 the http loop died without being asked to stop.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from collections.abc import Mapping

from pydantic import ValidationError

from ajcwebdev_docker.config import Settings
from ajcwebdev_docker.errors import BindError, LoopExitedError
from ajcwebdev_docker.observability import setup_json_logging
from ajcwebdev_docker.server import Server

EXIT_OK = 0
EXIT_BIND_FAILED = 1
EXIT_BAD_CONFIG = 2
EXIT_LOOP_EXITED = 3

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(cancel: threading.Event, log: logging.Logger) -> dict:
    """Map termination signals onto `cancel`. Returns the handlers they replaced."""

    def _handler(signum, _frame):
        log.info("shutdown_signal", extra={"signal": signal.Signals(signum).name})
        cancel.set()

    previous = {}
    for sig in SHUTDOWN_SIGNALS:
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_signal_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


def main(environ: Mapping[str, str] | None = None) -> int:
    try:
        settings = Settings.from_env(environ)
    except ValidationError as e:
        setup_json_logging().error("invalid_config", extra={"error": _describe(e)})
        return EXIT_BAD_CONFIG

    log = setup_json_logging(level=settings.LOG_LEVEL)
    server = Server(settings, logger=log)
    cancel = threading.Event()

    previous = install_signal_handlers(cancel, log)
    try:
        server.serve(cancel)
    except BindError:
        # start() already logged the cause
        return EXIT_BIND_FAILED
    except LoopExitedError:
        return EXIT_LOOP_EXITED
    finally:
        restore_signal_handlers(previous)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
