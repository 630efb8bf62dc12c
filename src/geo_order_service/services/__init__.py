"""Service layer exports."""

from geo_order_service.services.monitoring import MonitoringService
from geo_order_service.services.notifier import EventNotifier
from geo_order_service.services.orders import OrderService
from geo_order_service.services.tasks import BackgroundTaskRunner
from geo_order_service.services.webhooks import WebhookService

__all__ = [
    "BackgroundTaskRunner",
    "EventNotifier",
    "MonitoringService",
    "OrderService",
    "WebhookService",
]
