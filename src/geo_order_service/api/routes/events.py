"""Server-Sent Events endpoints for live order and monitoring updates."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from aiohttp import web

from geo_order_service.api.utils import http_error, parse_uuid
from geo_order_service.core.exceptions import GeoOrderServiceError
from geo_order_service.events.sse import SseConnection
from geo_order_service.events.subscriptions import FrameFilter
from geo_order_service.services.dependencies import get_container, require_current_user

routes = web.RouteTableDef()


def _max_events(request: web.Request) -> int | None:
    raw = request.rel_url.query.get("max_events")
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise web.HTTPBadRequest(text="max_events must be an integer") from exc
    return value if value > 0 else None


def _resource_filter(key: str, resource_id: UUID) -> FrameFilter:
    expected = str(resource_id)

    def _matches(_event_type: str, data: Any) -> bool:
        return isinstance(data, dict) and data.get(key) == expected

    return _matches


async def _stream(
    request: web.Request,
    owner_id: UUID,
    *,
    include_global: bool,
    frame_filter: FrameFilter | None = None,
) -> web.StreamResponse:
    container = get_container(request)
    max_events = _max_events(request)
    connection = await SseConnection.prepare(request)
    try:
        subscription = container.multiplexer.open(
            owner_id,
            connection,
            include_global=include_global,
            frame_filter=frame_filter,
        )
    except GeoOrderServiceError as exc:
        await connection.response.write(f"event: error\ndata: {exc}\n\n".encode("utf-8"))
        return connection.response
    await container.multiplexer.run(subscription, max_frames=max_events)
    return connection.response


@routes.get("/api/v1/events")
async def events_stream(request: web.Request) -> web.StreamResponse:
    owner_id = await require_current_user(request)
    return await _stream(request, owner_id, include_global=True)


@routes.get("/api/v1/events/orders/{order_id}")
async def order_events_stream(request: web.Request) -> web.StreamResponse:
    owner_id = await require_current_user(request)
    order_id = parse_uuid(request.match_info["order_id"], "order_id")
    try:
        await get_container(request).orders.get_order(order_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return await _stream(
        request,
        owner_id,
        include_global=False,
        frame_filter=_resource_filter("order_id", order_id),
    )


@routes.get("/api/v1/events/monitoring/{monitoring_id}")
async def monitoring_events_stream(request: web.Request) -> web.StreamResponse:
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    try:
        await get_container(request).monitoring.get_monitoring(monitoring_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return await _stream(
        request,
        owner_id,
        include_global=False,
        frame_filter=_resource_filter("monitoring_id", monitoring_id),
    )
