"""Webhook delivery ledger endpoints."""
from __future__ import annotations

from aiohttp import web

from geo_order_service.api.utils import (
    http_error,
    paginated_response,
    pagination_params,
    parse_uuid,
)
from geo_order_service.core.exceptions import GeoOrderServiceError
from geo_order_service.domain.enums import DeliveryStatus
from geo_order_service.services.dependencies import (
    get_container,
    get_webhook_service,
    require_current_user,
)

routes = web.RouteTableDef()


@routes.get("/api/v1/webhooks/deliveries")
async def list_deliveries(request: web.Request):
    owner_id = await require_current_user(request)
    limit, offset = pagination_params(request)
    status_raw = request.rel_url.query.get("status")
    try:
        status = DeliveryStatus(status_raw) if status_raw else None
    except ValueError as exc:
        raise web.HTTPBadRequest(text="Invalid status") from exc
    service = get_webhook_service(request)
    items, total = await service.list_deliveries(
        owner_id, status=status, limit=limit, offset=offset
    )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/webhooks/deliveries/{delivery_id}")
async def get_delivery(request: web.Request):
    owner_id = await require_current_user(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = get_webhook_service(request)
    try:
        delivery = await service.get_delivery_status(delivery_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(delivery.model_dump(mode="json"))


@routes.post("/api/v1/webhooks/deliveries/{delivery_id}/retry")
async def retry_delivery(request: web.Request):
    owner_id = await require_current_user(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = get_webhook_service(request)
    try:
        plan = await service.resolve_retry(delivery_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    get_container(request).webhook_runner.spawn(
        "webhook_manual_retry",
        lambda: service.run_retry(plan),
        delivery_id=delivery_id,
    )
    return web.json_response(
        {"id": str(delivery_id), "status": "retry_scheduled"},
        status=202,
    )
