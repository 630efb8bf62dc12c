"""Tests for the detached background task runner."""
from __future__ import annotations

import asyncio

import pytest

from geo_order_service.services.tasks import BackgroundTaskRunner


@pytest.mark.asyncio
async def test_spawn_runs_in_background():
    runner = BackgroundTaskRunner()
    started = asyncio.Event()
    release = asyncio.Event()

    async def job():
        started.set()
        await release.wait()

    task = runner.spawn("job", job)
    await started.wait()
    assert runner.pending == 1

    release.set()
    await task
    assert runner.pending == 0
    assert runner.stats() == {"pending": 0, "completed": 1, "failed": 0}


@pytest.mark.asyncio
async def test_failure_lands_in_history():
    runner = BackgroundTaskRunner()

    async def broken():
        raise ValueError("provider said no")

    runner.spawn("monitoring_setup", broken, monitoring_id="abc")
    await runner.drain()

    assert runner.stats()["failed"] == 1
    [failure] = runner.failures
    assert failure.name == "monitoring_setup"
    assert failure.error == "provider said no"
    assert failure.error_type == "ValueError"
    assert failure.context == {"monitoring_id": "abc"}
    assert failure.to_dict()["failed_at"]


@pytest.mark.asyncio
async def test_failure_history_is_bounded():
    runner = BackgroundTaskRunner(failure_history=2)

    async def broken():
        raise RuntimeError("boom")

    for _ in range(5):
        runner.spawn("broken", broken)
    await runner.drain()

    assert len(runner.failures) == 2
    assert runner.stats()["failed"] == 5


@pytest.mark.asyncio
async def test_drain_waits_for_nested_spawns():
    runner = BackgroundTaskRunner()
    done: list[str] = []

    async def child():
        await asyncio.sleep(0.01)
        done.append("child")

    async def parent():
        runner.spawn("child", child)
        done.append("parent")

    runner.spawn("parent", parent)
    await runner.drain()

    assert done == ["parent", "child"]
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_concurrency_is_capped():
    runner = BackgroundTaskRunner(max_concurrency=2)
    running = 0
    peak = 0

    async def job():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    for _ in range(6):
        runner.spawn("job", job)
    await runner.drain()

    assert peak == 2
    assert runner.stats()["completed"] == 6


@pytest.mark.asyncio
async def test_stop_cancels_stragglers_and_refuses_new_work():
    runner = BackgroundTaskRunner()

    async def forever():
        await asyncio.Event().wait()

    task = runner.spawn("forever", forever)
    await asyncio.sleep(0)
    await runner.stop(timeout=0.01)

    assert task.cancelled()
    assert runner.pending == 0
    with pytest.raises(RuntimeError):
        runner.spawn("late", forever)
