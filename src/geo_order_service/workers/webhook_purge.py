"""Worker: purge old delivered webhook ledger entries."""
from __future__ import annotations

from datetime import datetime, timedelta

from backend_common.worker import TaskFn
from geo_order_service.repositories.webhooks import WebhookDeliveryRepository


def make_webhook_purge_task(
    repository: WebhookDeliveryRepository, *, retention_days: int = 30
) -> TaskFn:
    async def webhook_purge_delivered(now: datetime) -> str | None:
        """Delete delivered entries older than ``retention_days``."""
        cutoff = now - timedelta(days=retention_days)
        purged = await repository.delete_delivered_before(cutoff)
        return f"purged={purged}" if purged else None

    return webhook_purge_delivered
