"""Unit tests for backend_common.worker.BackgroundWorker and the service's worker tasks.

These are pure async tests; no database or aiohttp test server required.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from aiohttp import web

from backend_common.worker import BackgroundWorker, WorkerTask
from geo_order_service.workers import (
    build_worker,
    make_order_reconcile_task,
    make_webhook_purge_task,
)


@pytest.mark.asyncio
async def test_worker_runs_tasks():
    """Worker should call each task function with a UTC datetime."""
    called_with: list[datetime] = []

    async def task_fn(now: datetime) -> str | None:
        called_with.append(now)
        return "ok"

    worker = BackgroundWorker(
        interval_seconds=0.05,
        tasks=[WorkerTask(name="test_task", fn=task_fn)],
    )

    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.2)
    await worker.stop(app)

    assert len(called_with) >= 2
    for dt in called_with:
        assert dt.tzinfo is not None


@pytest.mark.asyncio
async def test_worker_task_failure_does_not_stop_others():
    good_count = 0

    async def bad_task(now: datetime) -> str | None:
        raise RuntimeError("boom")

    async def good_task(now: datetime) -> str | None:
        nonlocal good_count
        good_count += 1
        return None

    worker = BackgroundWorker(
        interval_seconds=0.05,
        tasks=[WorkerTask(name="bad", fn=bad_task), WorkerTask(name="good", fn=good_task)],
    )

    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.2)
    await worker.stop(app)

    assert good_count >= 2


@pytest.mark.asyncio
async def test_worker_stop_is_clean():
    fn = AsyncMock(return_value=None)
    worker = BackgroundWorker(interval_seconds=0.05, tasks=[WorkerTask(name="t", fn=fn)])

    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.12)
    await worker.stop(app)

    count_at_stop = fn.call_count
    await asyncio.sleep(0.1)
    assert fn.call_count == count_at_stop


@pytest.mark.asyncio
async def test_worker_stop_without_start():
    worker = BackgroundWorker(interval_seconds=1.0, tasks=[])
    await worker.stop(web.Application())


@pytest.mark.asyncio
async def test_run_once_collects_summaries():
    async def noisy(now: datetime) -> str | None:
        return "done=1"

    async def broken(now: datetime) -> str | None:
        raise RuntimeError("boom")

    worker = BackgroundWorker(
        tasks=[WorkerTask(name="noisy", fn=noisy), WorkerTask(name="broken", fn=broken)]
    )

    assert await worker.run_once() == {"noisy": "done=1", "broken": None}


# ---------------------------------------------------------------------------
# order_status_reconcile
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_order_reconcile_returns_summary():
    orders = AsyncMock()
    orders.reconcile_processing = AsyncMock(return_value=3)
    task = make_order_reconcile_task(orders, batch_size=25)

    result = await task(datetime.now(timezone.utc))

    assert result == "reconciled=3"
    orders.reconcile_processing.assert_awaited_once_with(limit=25)


@pytest.mark.asyncio
async def test_order_reconcile_silent_when_nothing_changed():
    orders = AsyncMock()
    orders.reconcile_processing = AsyncMock(return_value=0)

    assert await make_order_reconcile_task(orders)(datetime.now(timezone.utc)) is None


# ---------------------------------------------------------------------------
# webhook_purge_delivered
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_webhook_purge_uses_retention_cutoff():
    now = datetime.now(timezone.utc)
    repository = AsyncMock()
    repository.delete_delivered_before = AsyncMock(return_value=7)
    task = make_webhook_purge_task(repository, retention_days=10)

    result = await task(now)

    assert result == "purged=7"
    repository.delete_delivered_before.assert_awaited_once_with(now - timedelta(days=10))


@pytest.mark.asyncio
async def test_webhook_purge_silent_when_nothing_deleted():
    repository = AsyncMock()
    repository.delete_delivered_before = AsyncMock(return_value=0)

    assert await make_webhook_purge_task(repository)(datetime.now(timezone.utc)) is None


@pytest.mark.asyncio
async def test_build_worker_registers_service_tasks(container, test_settings):
    worker = build_worker(container, test_settings)

    assert worker.interval_seconds == test_settings.worker_interval_seconds
    assert [task.name for task in worker.tasks] == [
        "order_status_reconcile",
        "webhook_purge_delivered",
    ]
    assert await worker.run_once() == {
        "order_status_reconcile": None,
        "webhook_purge_delivered": None,
    }
