"""Order lifecycle service."""
from __future__ import annotations

from typing import Any, List
from uuid import UUID

import structlog

from geo_order_service.clients.provider import ProviderClient
from geo_order_service.core.exceptions import (
    ConflictError,
    InvalidStatusTransitionError,
    ProviderError,
)
from geo_order_service.domain.dto import NewOrderRecord, OrderCreateDTO, OrderUpdateDTO
from geo_order_service.domain.enums import EventType, OrderStatus
from geo_order_service.domain.models import Order
from geo_order_service.repositories.orders import OrderRepository
from geo_order_service.services.notifier import EventNotifier
from geo_order_service.services.state_machine import is_terminal, validate_order_transition
from geo_order_service.services.tasks import BackgroundTaskRunner
from geo_order_service.services.validation import validate_order_params, validate_webhook_url
from geo_order_service.services.webhooks import ResourceRef

logger = structlog.get_logger(__name__)


def order_event(order: Order) -> dict[str, Any]:
    return {
        "order_id": str(order.id),
        "status": order.status.value,
        "provider_order_id": order.provider_order_id,
        "updated_at": order.updated_at.isoformat(),
    }


def parse_remote_order_status(raw: str | None) -> OrderStatus | None:
    """Map a provider status string onto the local enum; unknown values map to ``None``."""
    if not raw:
        return None
    try:
        return OrderStatus(raw.strip().lower())
    except ValueError:
        return None


class OrderService:
    """Creates orders immediately and reconciles them with the provider in the background."""

    def __init__(
        self,
        repository: OrderRepository,
        provider: ProviderClient,
        notifier: EventNotifier,
        runner: BackgroundTaskRunner,
    ):
        self._repository = repository
        self._provider = provider
        self._notifier = notifier
        self._runner = runner

    def _publish(self, order: Order) -> None:
        self._notifier.notify(
            order.owner_id,
            EventType.ORDER_UPDATE.value,
            order_event(order),
            webhook_url=order.webhook_url,
            ref=ResourceRef(owner_id=order.owner_id, order_id=order.id),
        )

    async def create_order(self, owner_id: UUID, data: OrderCreateDTO) -> Order:
        validate_order_params(data.order_data)
        validate_webhook_url(data.webhook_url)

        # price estimation is on the critical path: a provider failure aborts creation
        estimate = await self._provider.estimate_price(data.order_data)
        order = await self._repository.create(
            NewOrderRecord(
                owner_id=owner_id,
                order_data=data.order_data,
                price=estimate.estimated_total,
                webhook_url=data.webhook_url,
            )
        )
        logger.info(
            "order created",
            order_id=str(order.id),
            owner_id=str(owner_id),
            price=str(order.price),
        )
        self._runner.spawn(
            "order_placement",
            lambda: self._place_order(order),
            order_id=order.id,
        )
        self._publish(order)
        return order

    async def _place_order(self, order: Order) -> None:
        """Single provider round trip, then one persist-then-publish step."""
        try:
            remote = await self._provider.create_order(order.order_data)
        except ProviderError as exc:
            logger.warning("provider order placement failed", order_id=str(order.id), error=str(exc))
            current = await self._repository.get(order.id)
            if is_terminal(current.status):
                return
            failed = await self._repository.update(
                order.id, OrderUpdateDTO(status=OrderStatus.FAILED)
            )
            self._publish(failed)
            return

        current = await self._repository.get(order.id)
        if is_terminal(current.status):
            # cancelled while the call was in flight: keep the local status, record the id
            await self._repository.update(
                order.id, OrderUpdateDTO(provider_order_id=remote.id)
            )
            logger.info(
                "provider order placed after local terminal status",
                order_id=str(order.id),
                status=current.status.value,
                provider_order_id=remote.id,
            )
            return
        updated = await self._repository.update(
            order.id,
            OrderUpdateDTO(status=OrderStatus.PROCESSING, provider_order_id=remote.id),
        )
        logger.info("order processing", order_id=str(order.id), provider_order_id=remote.id)
        self._publish(updated)

    async def get_order(self, order_id: UUID, owner_id: UUID) -> Order:
        return await self._repository.get(order_id, owner_id)

    async def get_order_status(self, order_id: UUID, owner_id: UUID) -> Order:
        order = await self._repository.get(order_id, owner_id)
        return await self._refresh(order)

    async def _refresh(self, order: Order) -> Order:
        """Best-effort reconciliation with the provider; degrades to the local record."""
        if not order.provider_order_id or is_terminal(order.status):
            return order
        try:
            remote = await self._provider.get_order_status(order.provider_order_id)
        except ProviderError as exc:
            logger.warning(
                "provider status unavailable, using local status",
                order_id=str(order.id),
                error=str(exc),
            )
            return order
        remote_status = parse_remote_order_status(remote.status)
        if remote_status is None:
            return order
        # the provider call is slow: a cancel may have landed meanwhile
        current = await self._repository.get(order.id)
        if is_terminal(current.status) or remote_status == current.status:
            return current
        try:
            validate_order_transition(current.status, remote_status)
        except InvalidStatusTransitionError:
            logger.warning(
                "ignoring provider status regression",
                order_id=str(order.id),
                local_status=current.status.value,
                remote_status=remote_status.value,
            )
            return current
        updated = await self._repository.update(order.id, OrderUpdateDTO(status=remote_status))
        logger.info(
            "order reconciled",
            order_id=str(order.id),
            from_status=current.status.value,
            to_status=remote_status.value,
        )
        self._publish(updated)
        return updated

    async def cancel_order(self, order_id: UUID, owner_id: UUID) -> Order:
        order = await self._repository.get(order_id, owner_id)
        if order.status == OrderStatus.CANCELLED:
            return order
        if order.status == OrderStatus.COMPLETED:
            raise ConflictError("Cannot cancel completed order")
        validate_order_transition(order.status, OrderStatus.CANCELLED)
        updated = await self._repository.update(
            order_id, OrderUpdateDTO(status=OrderStatus.CANCELLED)
        )
        logger.info("order cancelled", order_id=str(order_id), owner_id=str(owner_id))
        self._publish(updated)
        return updated

    async def get_order_history(
        self, owner_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> tuple[List[Order], int]:
        return await self._repository.list_by_owner(owner_id, limit=limit, offset=offset)

    async def reconcile_processing(self, *, limit: int = 100) -> int:
        """Refresh processing orders against the provider; returns how many changed."""
        changed = 0
        for order in await self._repository.list_awaiting_provider(limit=limit):
            refreshed = await self._refresh(order)
            if refreshed.status != order.status:
                changed += 1
        return changed
