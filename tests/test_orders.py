"""Order lifecycle: immediate creation, background placement, reconciliation, cancel."""
from __future__ import annotations

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from geo_order_service.core.exceptions import (
    ConflictError,
    NotFoundError,
    ProviderRequestError,
    ProviderUnavailableError,
    ValidationError,
)
from geo_order_service.domain.dto import OrderCreateDTO, OrderUpdateDTO
from geo_order_service.domain.enums import OrderStatus

from tests.conftest import VALID_POLYGON


def _order_dto(**overrides) -> OrderCreateDTO:
    data = {"dataType": "satellite", "areaOfInterest": VALID_POLYGON}
    return OrderCreateDTO(order_data=data, **overrides)


@pytest.mark.asyncio
async def test_create_order_returns_pending_then_processing(container, owner_id, provider):
    order = await container.orders.create_order(owner_id, _order_dto())

    assert order.status == OrderStatus.PENDING
    assert order.price == Decimal("100.50")
    assert order.provider_order_id is None

    await container.drain()
    stored = await container.orders.get_order(order.id, owner_id)
    assert stored.status == OrderStatus.PROCESSING
    assert stored.provider_order_id == "ext-1"
    assert stored.price == Decimal("100.50")


@pytest.mark.asyncio
async def test_create_order_does_not_wait_for_provider(container, owner_id, provider):
    provider.order_gate = asyncio.Event()

    order = await container.orders.create_order(owner_id, _order_dto())
    await asyncio.sleep(0)

    assert order.status == OrderStatus.PENDING
    assert (await container.orders.get_order(order.id, owner_id)).status == OrderStatus.PENDING

    provider.order_gate.set()
    await container.drain()
    assert (await container.orders.get_order(order.id, owner_id)).status == OrderStatus.PROCESSING


@pytest.mark.asyncio
async def test_create_order_publishes_pending_and_processing(container, owner_id, capture_events):
    events = capture_events(owner_id, "order:update")

    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()

    statuses = [data["status"] for _, data in events]
    assert statuses == ["pending", "processing"]
    assert all(data["order_id"] == str(order.id) for _, data in events)
    assert events[-1][1]["provider_order_id"] == "ext-1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "order_data",
    [{}, {"quality": "high"}],
)
async def test_create_order_requires_data_type_or_aoi(container, owner_id, order_repo, provider, order_data):
    with pytest.raises(ValidationError):
        await container.orders.create_order(owner_id, OrderCreateDTO(order_data=order_data))

    assert order_repo.create_calls == 0
    assert provider.calls == []


@pytest.mark.asyncio
async def test_create_order_rejects_non_http_webhook(container, owner_id, order_repo):
    with pytest.raises(ValidationError):
        await container.orders.create_order(
            owner_id, _order_dto(webhook_url="ftp://example.com/hook")
        )
    assert order_repo.create_calls == 0


@pytest.mark.asyncio
async def test_price_estimate_failure_aborts_creation(container, owner_id, order_repo, provider):
    provider.estimate_error = ProviderUnavailableError("down", status=503)

    with pytest.raises(ProviderUnavailableError):
        await container.orders.create_order(owner_id, _order_dto())

    assert order_repo.create_calls == 0
    assert provider.called("create_order") == 0


@pytest.mark.asyncio
async def test_provider_placement_failure_marks_failed_without_retry(
    container, owner_id, provider, capture_events
):
    provider.create_order_error = ProviderRequestError("bad order", status=422)
    events = capture_events(owner_id, "order:update")

    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()

    stored = await container.orders.get_order(order.id, owner_id)
    assert stored.status == OrderStatus.FAILED
    assert provider.called("create_order") == 1
    assert [data["status"] for _, data in events] == ["pending", "failed"]
    # absorbed into the status, not a runner failure
    assert container.runner.failures == []


@pytest.mark.asyncio
async def test_cancel_during_placement_keeps_cancelled_and_records_provider_id(
    container, owner_id, provider
):
    provider.order_gate = asyncio.Event()
    order = await container.orders.create_order(owner_id, _order_dto())

    cancelled = await container.orders.cancel_order(order.id, owner_id)
    assert cancelled.status == OrderStatus.CANCELLED

    provider.order_gate.set()
    await container.drain()

    stored = await container.orders.get_order(order.id, owner_id)
    assert stored.status == OrderStatus.CANCELLED
    assert stored.provider_order_id == "ext-1"


@pytest.mark.asyncio
async def test_stalled_webhook_pool_does_not_hold_up_placement(
    container, owner_id, test_settings, hook_server
):
    stalled = asyncio.Event()
    for _ in range(test_settings.webhook_max_concurrency):
        container.webhook_runner.spawn("webhook_delivery", stalled.wait)

    order = await container.orders.create_order(owner_id, _order_dto(webhook_url=hook_server.url))
    await container.runner.drain()

    stored = await container.orders.get_order(order.id, owner_id)
    assert stored.status == OrderStatus.PROCESSING
    # both status webhooks are still queued behind the stalled deliveries
    assert hook_server.requests == []
    assert container.webhook_runner.pending == test_settings.webhook_max_concurrency + 2

    stalled.set()
    await container.drain()
    assert sorted(r["body"]["data"]["status"] for r in hook_server.requests) == [
        "pending",
        "processing",
    ]


@pytest.mark.asyncio
async def test_cancel_is_idempotent(container, owner_id, capture_events):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    events = capture_events(owner_id, "order:update")

    first = await container.orders.cancel_order(order.id, owner_id)
    second = await container.orders.cancel_order(order.id, owner_id)

    assert first.status == OrderStatus.CANCELLED
    assert second == first
    assert len(events) == 1


@pytest.mark.asyncio
async def test_cancel_completed_order_conflicts(container, owner_id, order_repo):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    await order_repo.update(order.id, OrderUpdateDTO(status=OrderStatus.COMPLETED))

    with pytest.raises(ConflictError):
        await container.orders.cancel_order(order.id, owner_id)
    with pytest.raises(ConflictError):
        await container.orders.cancel_order(order.id, owner_id)


@pytest.mark.asyncio
async def test_get_order_scoped_to_owner(container, owner_id, other_owner_id):
    order = await container.orders.create_order(owner_id, _order_dto())

    with pytest.raises(NotFoundError):
        await container.orders.get_order(order.id, other_owner_id)
    with pytest.raises(NotFoundError):
        await container.orders.get_order(uuid4(), owner_id)


@pytest.mark.asyncio
async def test_get_status_reconciles_remote_change(container, owner_id, provider, capture_events):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    provider.order_status = "COMPLETED"
    events = capture_events(owner_id, "order:update")

    refreshed = await container.orders.get_order_status(order.id, owner_id)

    assert refreshed.status == OrderStatus.COMPLETED
    assert (await container.orders.get_order(order.id, owner_id)).status == OrderStatus.COMPLETED
    assert [data["status"] for _, data in events] == ["completed"]


@pytest.mark.asyncio
async def test_get_status_degrades_to_local_when_provider_unavailable(
    container, owner_id, provider
):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    provider.order_status_error = ProviderUnavailableError("timeout")

    refreshed = await container.orders.get_order_status(order.id, owner_id)

    assert refreshed.status == OrderStatus.PROCESSING


@pytest.mark.asyncio
async def test_get_status_skips_provider_without_provider_id(container, owner_id, provider):
    provider.order_gate = asyncio.Event()
    order = await container.orders.create_order(owner_id, _order_dto())

    refreshed = await container.orders.get_order_status(order.id, owner_id)

    assert refreshed.status == OrderStatus.PENDING
    assert provider.called("get_order_status") == 0
    provider.order_gate.set()


@pytest.mark.asyncio
async def test_terminal_status_is_not_overwritten_by_provider(
    container, owner_id, provider
):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    await container.orders.cancel_order(order.id, owner_id)
    provider.order_status = "completed"

    refreshed = await container.orders.get_order_status(order.id, owner_id)

    assert refreshed.status == OrderStatus.CANCELLED
    assert provider.called("get_order_status") == 0


@pytest.mark.asyncio
async def test_cancel_during_status_poll_is_not_overwritten(
    container, owner_id, provider, capture_events
):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    provider.status_gate = asyncio.Event()
    provider.order_status = "completed"

    poll = asyncio.create_task(container.orders.get_order_status(order.id, owner_id))
    await asyncio.sleep(0)
    assert provider.called("get_order_status") == 1

    cancelled = await container.orders.cancel_order(order.id, owner_id)
    assert cancelled.status == OrderStatus.CANCELLED
    events = capture_events(owner_id, "order:update")

    provider.status_gate.set()
    refreshed = await poll

    assert refreshed.status == OrderStatus.CANCELLED
    assert (await container.orders.get_order(order.id, owner_id)).status == OrderStatus.CANCELLED
    assert events == []


@pytest.mark.asyncio
async def test_reconcile_sweep_keeps_order_cancelled_mid_sweep(container, owner_id, provider):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    provider.status_gate = asyncio.Event()
    provider.order_status = "completed"

    sweep = asyncio.create_task(container.orders.reconcile_processing(limit=10))
    await asyncio.sleep(0)
    await container.orders.cancel_order(order.id, owner_id)
    provider.status_gate.set()

    await sweep
    assert (await container.orders.get_order(order.id, owner_id)).status == OrderStatus.CANCELLED


@pytest.mark.asyncio
async def test_provider_status_regression_is_ignored(container, owner_id, provider):
    order = await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    provider.order_status = "pending"

    refreshed = await container.orders.get_order_status(order.id, owner_id)

    assert refreshed.status == OrderStatus.PROCESSING


@pytest.mark.asyncio
async def test_order_history_is_paginated(container, owner_id, other_owner_id):
    for _ in range(3):
        await container.orders.create_order(owner_id, _order_dto())
    await container.orders.create_order(other_owner_id, _order_dto())

    items, total = await container.orders.get_order_history(owner_id, limit=2, offset=0)

    assert total == 3
    assert len(items) == 2
    assert all(item.owner_id == owner_id for item in items)


@pytest.mark.asyncio
async def test_reconcile_processing_counts_changes(container, owner_id, provider):
    for _ in range(2):
        await container.orders.create_order(owner_id, _order_dto())
    await container.drain()
    provider.order_status = "completed"

    changed = await container.orders.reconcile_processing(limit=10)

    assert changed == 2
    items, _ = await container.orders.get_order_history(owner_id)
    assert {item.status for item in items} == {OrderStatus.COMPLETED}
