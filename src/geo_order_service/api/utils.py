"""Helper utilities for API handlers."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from aiohttp import web
from pydantic import BaseModel, ValidationError as PydanticValidationError

from backend_common.aiohttp_app import read_json as read_json  # noqa: F401
from geo_order_service.core.exceptions import (
    ConflictError,
    GeoOrderServiceError,
    NotFoundError,
    ProviderError,
    SubscriptionLimitError,
    ValidationError,
)


def parse_uuid(value: str, label: str) -> UUID:
    try:
        uuid_str = value if isinstance(value, str) else str(value)
        return UUID(uuid_str)
    except (ValueError, TypeError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid {label}") from exc


def parse_body(model: type[BaseModel], body: dict[str, Any]):
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        raise web.HTTPBadRequest(text=exc.json(), content_type="application/json") from exc


def pagination_params(
    request: web.Request,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> tuple[int, int]:
    query = request.rel_url.query
    try:
        limit = int(query.get("limit", str(default_limit)))
        offset = int(query.get("offset", "0"))
    except ValueError as exc:
        raise web.HTTPBadRequest(text="limit and offset must be integers") from exc
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    if offset < 0:
        offset = 0
    return limit, offset


def paginated_response(
    items: list[Any],
    *,
    limit: int,
    offset: int,
    key: str,
    total: int,
) -> dict[str, Any]:
    page = offset // limit + 1 if limit else 1
    return {
        key: items,
        "total": total,
        "page": page,
        "page_size": limit,
    }


def http_error(exc: GeoOrderServiceError) -> web.HTTPException:
    """Translate a domain error into the matching aiohttp HTTP exception."""
    if isinstance(exc, ValidationError):
        return web.HTTPBadRequest(text=str(exc))
    if isinstance(exc, NotFoundError):
        return web.HTTPNotFound(text=str(exc))
    if isinstance(exc, ConflictError):
        return web.HTTPConflict(text=str(exc))
    if isinstance(exc, ProviderError):
        return web.HTTPBadGateway(text=str(exc))
    if isinstance(exc, SubscriptionLimitError):
        return web.HTTPServiceUnavailable(text=str(exc))
    return web.HTTPInternalServerError(text="Internal error")
