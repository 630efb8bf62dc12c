"""Domain enums."""
from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MonitoringStatus(str, Enum):
    """Monitoring configuration states."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"


class DeliveryStatus(str, Enum):
    """Webhook ledger entry states."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class EventType(str, Enum):
    """Event types fanned out to live subscribers and webhooks."""

    ORDER_UPDATE = "order:update"
    MONITORING_UPDATE = "monitoring:update"
    NOTIFICATION = "notification"


class AoiGeometryType(str, Enum):
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"
