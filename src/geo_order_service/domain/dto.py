"""Pydantic DTOs for repository/service layers."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from geo_order_service.domain.enums import DeliveryStatus, MonitoringStatus, OrderStatus


class OrderCreateDTO(BaseModel):
    """Caller input for order creation; ``order_data`` is passed to the provider as-is."""

    model_config = ConfigDict(extra="forbid")

    order_data: dict[str, Any] = Field(default_factory=dict)
    webhook_url: str | None = None


class OrderUpdateDTO(BaseModel):
    """Fields the lifecycle service may change; price is deliberately absent."""

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus | None = None
    provider_order_id: str | None = None


class MonitoringCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aoi_data: dict[str, Any]
    webhook_url: str | None = None
    config: dict[str, Any] | None = None


class MonitoringUpdateDTO(BaseModel):
    """Partial update: only explicitly supplied fields are written."""

    model_config = ConfigDict(extra="forbid")

    aoi_data: dict[str, Any] | None = None
    webhook_url: str | None = None
    config: dict[str, Any] | None = None
    status: MonitoringStatus | None = None
    provider_monitoring_id: str | None = None


class NewOrderRecord(BaseModel):
    owner_id: UUID
    order_data: dict[str, Any]
    price: Decimal | None = None
    webhook_url: str | None = None


class DeliveryCreateDTO(BaseModel):
    owner_id: UUID | None = None
    order_id: UUID | None = None
    monitoring_id: UUID | None = None
    event_type: str
    payload: Any = None
    target_url: str
    retried_from_id: UUID | None = None


class DeliveryAttemptDTO(BaseModel):
    status: DeliveryStatus
    retry_count: int
    last_error: str | None = None
    delivered_at: datetime | None = None
