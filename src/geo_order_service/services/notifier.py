"""Fans a lifecycle event out to live subscribers and, when registered, a webhook."""
from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog

from geo_order_service.core.exceptions import DeliveryFailedError
from geo_order_service.events.broadcaster import EventBroadcaster
from geo_order_service.services.tasks import BackgroundTaskRunner
from geo_order_service.services.webhooks import ResourceRef, WebhookService

logger = structlog.get_logger(__name__)


class EventNotifier:
    def __init__(
        self,
        broadcaster: EventBroadcaster,
        webhooks: WebhookService,
        delivery_runner: BackgroundTaskRunner,
    ):
        self._broadcaster = broadcaster
        self._webhooks = webhooks
        self._delivery_runner = delivery_runner

    def notify(
        self,
        owner_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        webhook_url: str | None = None,
        ref: ResourceRef | None = None,
    ) -> None:
        """Publish to the owner's subscribers, then schedule webhook delivery independently."""
        self._broadcaster.publish_to_owner(owner_id, event_type, data)
        if webhook_url:
            self._delivery_runner.spawn(
                "webhook_delivery",
                lambda: self._deliver(webhook_url, event_type, data, ref),
                owner_id=owner_id,
                event_type=event_type,
            )

    async def _deliver(
        self,
        url: str,
        event_type: str,
        data: dict[str, Any],
        ref: ResourceRef | None,
    ) -> None:
        try:
            await self._webhooks.deliver_with_retry(url, event_type, data, ref=ref)
        except DeliveryFailedError as exc:
            # recorded in the ledger; never escalated to the resource
            logger.warning(
                "webhook left for manual retry",
                delivery_id=str(exc.delivery_id),
                event_type=event_type,
                attempts=exc.attempts,
            )
