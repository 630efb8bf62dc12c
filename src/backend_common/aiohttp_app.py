"""Shared aiohttp application helpers."""
from __future__ import annotations

from typing import Any, Iterable, Literal, Protocol

from aiohttp import web
from aiohttp_cors import CorsConfig, ResourceOptions, setup as cors_setup

from backend_common.middleware.trace import (
    REQUEST_ID_HEADER,
    TRACE_ID_HEADER,
    USER_ID_HEADER,
    create_trace_middleware,
)

# aiohttp_cors wants sequences of names, not a comma-separated string.
REQUEST_HEADERS = (
    "Accept",
    "Accept-Language",
    "Content-Language",
    "Content-Type",
    "Authorization",
    TRACE_ID_HEADER,
    REQUEST_ID_HEADER,
    USER_ID_HEADER,
)
# EventSource clients send these when (re)connecting to a stream
STREAM_HEADERS = ("Cache-Control", "Last-Event-ID")

METHODS = ("GET", "HEAD", "POST", "PATCH", "DELETE", "OPTIONS")

EXPOSED_HEADERS = (TRACE_ID_HEADER, REQUEST_ID_HEADER)


class SettingsProtocol(Protocol):
    """Settings attributes used by the app helpers."""

    app_name: str
    env: Literal["development", "staging", "production"]
    cors_allowed_origins: list[str]


def cors_defaults(origins: Iterable[str]) -> dict[str, ResourceOptions]:
    """One credentialed ``ResourceOptions`` per allowed origin."""
    options = ResourceOptions(
        allow_credentials=True,
        expose_headers=EXPOSED_HEADERS,
        allow_headers=REQUEST_HEADERS + STREAM_HEADERS,
        allow_methods=METHODS,
    )
    return {origin: options for origin in origins}


def create_base_app(settings: SettingsProtocol) -> tuple[web.Application, CorsConfig]:
    """Application with the trace middleware installed and CORS ready to attach."""
    app = web.Application(middlewares=[create_trace_middleware(settings.app_name)])
    cors = cors_setup(app, defaults=cors_defaults(settings.cors_allowed_origins))
    return app, cors


def add_cors_to_routes(app: web.Application, cors: CorsConfig) -> None:
    """Attach CORS to every registered route; call after all routes are added."""
    for route in list(app.router.routes()):
        cors.add(route)


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body, raising HTTPBadRequest on a missing, malformed or non-object body."""
    if not request.can_read_body:
        raise web.HTTPBadRequest(text="Request body is required")
    try:
        data = await request.json()
    except ValueError as exc:
        raise web.HTTPBadRequest(text="Invalid JSON payload") from exc
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    return data
