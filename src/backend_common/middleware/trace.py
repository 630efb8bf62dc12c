"""Middleware binding trace_id / request_id / owner_id into the log context."""
from __future__ import annotations

import time
from uuid import UUID, uuid4

import structlog
from aiohttp import web

TRACE_ID_HEADER = "X-Trace-Id"
REQUEST_ID_HEADER = "X-Request-Id"
USER_ID_HEADER = "X-User-Id"

logger = structlog.get_logger(__name__)

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
}


def is_valid_uuid(value: str) -> bool:
    try:
        UUID(value)
        return True
    except (ValueError, AttributeError):
        return False


def get_safe_headers(headers) -> dict:
    """Return headers as a plain dict with credentials filtered out."""
    return {
        key: value
        for key, value in dict(headers).items()
        if key.lower() not in SENSITIVE_HEADERS
    }


def _ensure_id(request: web.Request, header: str) -> str:
    value = request.headers.get(header)
    if not value or not is_valid_uuid(value):
        value = str(uuid4())
    return value


def create_trace_middleware(service_name: str):
    """Create trace middleware for the given service name."""

    @web.middleware
    async def trace_middleware(request: web.Request, handler):
        start_time = time.monotonic()
        trace_id = _ensure_id(request, TRACE_ID_HEADER)
        request_id = _ensure_id(request, REQUEST_ID_HEADER)
        request["trace_id"] = trace_id
        request["request_id"] = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            trace_id=trace_id,
            request_id=request_id,
            service=service_name,
            method=request.method,
            path=request.path,
        )
        owner_header = request.headers.get(USER_ID_HEADER)
        if owner_header:
            structlog.contextvars.bind_contextvars(owner_id=owner_header)

        logger.info(
            "Incoming request",
            query_string=request.query_string or None,
            remote=request.remote,
            headers=get_safe_headers(request.headers),
            content_length=request.content_length,
        )

        try:
            response = await handler(request)
            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            log = logger.warning if response.status >= 400 else logger.info
            log("Request completed", status_code=response.status, duration_ms=duration_ms)

            # streamed responses have already sent their headers
            if not response.prepared:
                response.headers[TRACE_ID_HEADER] = trace_id
                response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except web.HTTPException as exc:
            logger.warning(
                "Request failed with HTTP exception",
                status_code=exc.status_code,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                error=exc.text or exc.reason,
            )
            raise
        except Exception as exc:
            logger.error(
                "Request failed with exception",
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise
        finally:
            structlog.contextvars.clear_contextvars()

    return trace_middleware
