# ajcwebdev_docker/observability.py
"""
Structured logging and per-request observability.

Every log line is one JSON object:

  {"ts": "...", "level": "INFO", "event": "listening", "request_id": "-", "host": "0.0.0.0", "port": 8080}

Callers name the event in the message and pass its fields through `extra`;
anything that is not a standard LogRecord attribute becomes a top-level key.
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ajcwebdev_docker.metrics import observe_request

LOGGER_NAME = "ajcwebdev_docker"
REQUEST_ID_HEADER = "X-Request-ID"

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "event": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_json_logging(logger_name: str = LOGGER_NAME, level: str = "INFO") -> logging.Logger:
    """Attach a JSON-line stderr handler once; the level is applied on every call."""
    logger = logging.getLogger(logger_name)
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLineFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class AccessMiddleware(BaseHTTPMiddleware):
    """
    One pass per request: tag it with a request id (echoed or a fresh UUID4),
    feed the Prometheus metrics, and write an `access` line with method, path,
    status, duration_ms and client.
    """

    def __init__(self, app, logger: logging.Logger):
        super().__init__(app)
        self.log = logger

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        fields = {
            "request_id": request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4()),
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "-",
        }
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - start
            observe_request(request.method, request.url.path, None, elapsed)
            self.log.exception(
                "unhandled_exception", extra={**fields, "duration_ms": int(elapsed * 1000)}
            )
            raise

        elapsed = time.perf_counter() - start
        observe_request(request.method, request.url.path, response.status_code, elapsed)
        response.headers[REQUEST_ID_HEADER] = fields["request_id"]
        self.log.info(
            "access",
            extra={**fields, "status": response.status_code, "duration_ms": int(elapsed * 1000)},
        )
        return response
