"""Worker: refresh processing orders against the provider."""
from __future__ import annotations

from datetime import datetime

from backend_common.worker import TaskFn
from geo_order_service.services.orders import OrderService


def make_order_reconcile_task(orders: OrderService, *, batch_size: int = 100) -> TaskFn:
    async def order_status_reconcile(now: datetime) -> str | None:
        changed = await orders.reconcile_processing(limit=batch_size)
        return f"reconciled={changed}" if changed else None

    return order_status_reconcile
