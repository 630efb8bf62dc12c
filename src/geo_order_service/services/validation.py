"""Input checks applied before anything is persisted or sent to the provider."""
from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from geo_order_service.core.exceptions import ValidationError
from geo_order_service.domain.enums import AoiGeometryType

_WEBHOOK_SCHEMES = ("http", "https")
_SUPPORTED_GEOMETRIES = {item.value for item in AoiGeometryType}


def validate_webhook_url(url: str | None) -> None:
    if url is None:
        return
    parsed = urlparse(url)
    if parsed.scheme not in _WEBHOOK_SCHEMES or not parsed.netloc:
        raise ValidationError("Webhook URL must use http or https")


def validate_aoi(aoi: Any) -> None:
    """Area of interest must be a GeoJSON Polygon or MultiPolygon with coordinates."""
    if not isinstance(aoi, dict):
        raise ValidationError("Area of interest must be a GeoJSON geometry object")
    geometry_type = aoi.get("type")
    if geometry_type not in _SUPPORTED_GEOMETRIES:
        raise ValidationError(
            f"Invalid geometry type: {geometry_type}. Must be Polygon or MultiPolygon"
        )
    if not isinstance(aoi.get("coordinates"), list):
        raise ValidationError("Area of interest must include coordinates")


def validate_order_params(order_data: dict[str, Any]) -> None:
    if not order_data:
        raise ValidationError("Order parameters are required")
    if not order_data.get("dataType") and not order_data.get("areaOfInterest"):
        raise ValidationError("Order must specify a dataType or an areaOfInterest")
