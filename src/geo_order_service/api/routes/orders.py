"""Order endpoints."""
from __future__ import annotations

from typing import Any

from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field

from geo_order_service.api.utils import (
    http_error,
    paginated_response,
    pagination_params,
    parse_body,
    parse_uuid,
    read_json,
)
from geo_order_service.core.exceptions import GeoOrderServiceError
from geo_order_service.domain.dto import OrderCreateDTO
from geo_order_service.services.dependencies import get_order_service, require_current_user

routes = web.RouteTableDef()


class OrderCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    order_data: dict[str, Any] = Field(default_factory=dict)
    webhook_url: str | None = None


@routes.post("/api/v1/orders")
async def create_order(request: web.Request):
    owner_id = await require_current_user(request)
    body = await read_json(request)
    payload = parse_body(OrderCreateRequest, body)
    service = get_order_service(request)
    try:
        order = await service.create_order(
            owner_id,
            OrderCreateDTO(order_data=payload.order_data, webhook_url=payload.webhook_url),
        )
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(order.model_dump(mode="json"), status=201)


@routes.get("/api/v1/orders")
async def list_orders(request: web.Request):
    owner_id = await require_current_user(request)
    limit, offset = pagination_params(request)
    service = get_order_service(request)
    items, total = await service.get_order_history(owner_id, limit=limit, offset=offset)
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="orders",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/orders/{order_id}")
async def get_order(request: web.Request):
    owner_id = await require_current_user(request)
    order_id = parse_uuid(request.match_info["order_id"], "order_id")
    service = get_order_service(request)
    try:
        order = await service.get_order(order_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(order.model_dump(mode="json"))


@routes.get("/api/v1/orders/{order_id}/status")
async def get_order_status(request: web.Request):
    owner_id = await require_current_user(request)
    order_id = parse_uuid(request.match_info["order_id"], "order_id")
    service = get_order_service(request)
    try:
        order = await service.get_order_status(order_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(
        {
            "id": str(order.id),
            "status": order.status.value,
            "provider_order_id": order.provider_order_id,
            "updated_at": order.updated_at.isoformat(),
        }
    )


@routes.post("/api/v1/orders/{order_id}/cancel")
async def cancel_order(request: web.Request):
    owner_id = await require_current_user(request)
    order_id = parse_uuid(request.match_info["order_id"], "order_id")
    service = get_order_service(request)
    try:
        order = await service.cancel_order(order_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(order.model_dump(mode="json"))
