# ajcwebdev_docker/web.py
"""
The ASGI application: one route, everything else is a 404.

GET /  -> 200 text/html "<h2>ajcwebdev-docker</h2>"
*      -> 404 {"detail": "Not Found"}

Anything that is not GET / falls through to a catch-all route that raises
NotFoundError, so a wrong method on "/" is a 404 as well, not FastAPI's
usual 405. The interactive docs and openapi.json are turned off so that they
do not widen the route table.
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ajcwebdev_docker.config import Settings
from ajcwebdev_docker.errors import NotFoundError
from ajcwebdev_docker.observability import AccessMiddleware, setup_json_logging

APP_NAME = "ajcwebdev-docker"
INDEX_HTML = "<h2>ajcwebdev-docker</h2>"

# Methods the catch-all answers; anything more exotic still ends up as a 404 via the 405 mapping
FALLBACK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]


def read_version() -> str:
    try:
        return version(APP_NAME)
    except PackageNotFoundError:
        return "0.0.0"


def not_found_response(exc: NotFoundError) -> JSONResponse:
    return JSONResponse({"detail": "Not Found"}, status_code=404)


def create_app(settings: Settings | None = None, logger: logging.Logger | None = None) -> FastAPI:
    settings = settings or Settings()
    log = logger or setup_json_logging(level=settings.LOG_LEVEL)

    app = FastAPI(
        title=APP_NAME,
        version=read_version(),
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/", response_class=HTMLResponse)
    def index():
        return HTMLResponse(content=INDEX_HTML, status_code=200)

    @app.api_route("/{path:path}", methods=FALLBACK_METHODS, include_in_schema=False)
    async def fallback(request: Request, path: str):
        raise NotFoundError(request.method, request.url.path)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        log.debug("not_found", extra={"method": exc.method, "path": exc.path})
        return not_found_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return not_found_response(NotFoundError(request.method, request.url.path))
        return await http_exception_handler(request, exc)

    app.add_middleware(AccessMiddleware, logger=log)
    return app
