"""Monitoring configuration endpoints."""
from __future__ import annotations

from typing import Any

from aiohttp import web
from pydantic import BaseModel, ConfigDict

from geo_order_service.api.utils import (
    http_error,
    paginated_response,
    pagination_params,
    parse_body,
    parse_uuid,
    read_json,
)
from geo_order_service.core.exceptions import GeoOrderServiceError
from geo_order_service.domain.dto import MonitoringCreateDTO, MonitoringUpdateDTO
from geo_order_service.domain.enums import MonitoringStatus
from geo_order_service.services.dependencies import (
    get_monitoring_service,
    require_current_user,
)

routes = web.RouteTableDef()


class MonitoringPatchRequest(BaseModel):
    """Caller-editable fields; the provider id is owned by the lifecycle service."""

    model_config = ConfigDict(extra="forbid")

    aoi_data: dict[str, Any] | None = None
    webhook_url: str | None = None
    config: dict[str, Any] | None = None
    status: MonitoringStatus | None = None


@routes.post("/api/v1/monitoring")
async def create_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    body = await read_json(request)
    dto = parse_body(MonitoringCreateDTO, body)
    service = get_monitoring_service(request)
    try:
        monitoring = await service.create_monitoring(owner_id, dto)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(monitoring.model_dump(mode="json"), status=201)


@routes.get("/api/v1/monitoring")
async def list_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    limit, offset = pagination_params(request)
    service = get_monitoring_service(request)
    items, total = await service.get_user_monitoring(owner_id, limit=limit, offset=offset)
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="monitoring",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/monitoring/{monitoring_id}")
async def get_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    service = get_monitoring_service(request)
    try:
        monitoring = await service.get_monitoring(monitoring_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(monitoring.model_dump(mode="json"))


@routes.patch("/api/v1/monitoring/{monitoring_id}")
async def update_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    body = await read_json(request)
    patch = parse_body(MonitoringPatchRequest, body)
    # only keys present in the body are written
    updates = MonitoringUpdateDTO(**patch.model_dump(exclude_unset=True))
    service = get_monitoring_service(request)
    try:
        monitoring = await service.update_monitoring(monitoring_id, owner_id, updates)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(monitoring.model_dump(mode="json"))


@routes.delete("/api/v1/monitoring/{monitoring_id}")
async def delete_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    service = get_monitoring_service(request)
    try:
        await service.delete_monitoring(monitoring_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.Response(status=204)


@routes.get("/api/v1/monitoring/{monitoring_id}/status")
async def get_monitoring_status(request: web.Request):
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    service = get_monitoring_service(request)
    try:
        monitoring = await service.get_monitoring_status(monitoring_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(
        {
            "id": str(monitoring.id),
            "status": monitoring.status.value,
            "provider_monitoring_id": monitoring.provider_monitoring_id,
            "updated_at": monitoring.updated_at.isoformat(),
        }
    )


@routes.post("/api/v1/monitoring/{monitoring_id}/activate")
async def activate_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    service = get_monitoring_service(request)
    try:
        monitoring = await service.activate_monitoring(monitoring_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(monitoring.model_dump(mode="json"))


@routes.post("/api/v1/monitoring/{monitoring_id}/deactivate")
async def deactivate_monitoring(request: web.Request):
    owner_id = await require_current_user(request)
    monitoring_id = parse_uuid(request.match_info["monitoring_id"], "monitoring_id")
    service = get_monitoring_service(request)
    try:
        monitoring = await service.deactivate_monitoring(monitoring_id, owner_id)
    except GeoOrderServiceError as exc:
        raise http_error(exc) from exc
    return web.json_response(monitoring.model_dump(mode="json"))
