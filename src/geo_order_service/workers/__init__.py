"""Background workers for geo-order-service.

Each worker module exports a factory returning an async task function
compatible with :class:`backend_common.worker.WorkerTask`; the factories
close over the collaborators built at startup.
"""
from __future__ import annotations

from backend_common.worker import BackgroundWorker, WorkerTask

from geo_order_service.services.dependencies import ServiceContainer
from geo_order_service.settings import Settings
from geo_order_service.workers.order_reconcile import make_order_reconcile_task
from geo_order_service.workers.webhook_purge import make_webhook_purge_task


def build_worker(container: ServiceContainer, settings: Settings) -> BackgroundWorker:
    return BackgroundWorker(
        name="geo_order_worker",
        interval_seconds=settings.worker_interval_seconds,
        tasks=[
            WorkerTask(
                name="order_status_reconcile",
                fn=make_order_reconcile_task(
                    container.orders, batch_size=settings.order_reconcile_batch_size
                ),
            ),
            WorkerTask(
                name="webhook_purge_delivered",
                fn=make_webhook_purge_task(
                    container.delivery_repository,
                    retention_days=settings.webhook_delivered_retention_days,
                ),
            ),
        ],
    )


__all__ = [
    "build_worker",
    "make_order_reconcile_task",
    "make_webhook_purge_task",
]
