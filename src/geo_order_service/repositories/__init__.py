"""Repository package exports."""

from geo_order_service.repositories.monitoring import MonitoringRepository
from geo_order_service.repositories.orders import OrderRepository
from geo_order_service.repositories.webhooks import WebhookDeliveryRepository

__all__ = [
    "OrderRepository",
    "MonitoringRepository",
    "WebhookDeliveryRepository",
]
