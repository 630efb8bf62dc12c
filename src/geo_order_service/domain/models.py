"""Pydantic models representing persisted domain entities."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from geo_order_service.domain.enums import DeliveryStatus, MonitoringStatus, OrderStatus


class Order(BaseModel):
    id: UUID
    owner_id: UUID
    provider_order_id: str | None = None
    order_data: dict[str, Any] = Field(default_factory=dict)
    price: Decimal | None = None
    webhook_url: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime
    updated_at: datetime


class Monitoring(BaseModel):
    id: UUID
    owner_id: UUID
    provider_monitoring_id: str | None = None
    aoi_data: dict[str, Any]
    webhook_url: str | None = None
    status: MonitoringStatus = MonitoringStatus.INACTIVE
    config: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class WebhookDelivery(BaseModel):
    """One webhook attempt sequence recorded in the delivery ledger."""

    id: UUID
    owner_id: UUID | None = None
    order_id: UUID | None = None
    monitoring_id: UUID | None = None
    event_type: str
    payload: Any = None
    target_url: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    retry_count: int = 0
    last_error: str | None = None
    retried_from_id: UUID | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_orphaned(self) -> bool:
        return self.order_id is None and self.monitoring_id is None
