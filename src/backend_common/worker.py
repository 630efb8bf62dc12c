"""Periodic in-process background worker for aiohttp services.

Usage::

    from backend_common.worker import BackgroundWorker, WorkerTask

    async def purge_delivered(now: datetime) -> str | None:
        deleted = await ledger.delete_delivered_before(now - timedelta(days=30))
        return f"purged={deleted}" if deleted else None

    worker = BackgroundWorker(
        name="maintenance",
        interval_seconds=60.0,
        tasks=[WorkerTask(name="webhook_purge_delivered", fn=purge_delivered)],
    )

    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# A task receives the sweep time (UTC) and returns an optional summary that is
# logged when non-empty.
TaskFn = Callable[[datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn


@dataclass
class BackgroundWorker:
    """Runs a list of tasks every ``interval_seconds``.

    A failing task is logged and does not prevent the remaining tasks of the
    sweep from running. :meth:`start` / :meth:`stop` plug into
    ``app.on_startup`` / ``app.on_cleanup``.
    """

    name: str = "background_worker"
    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)

    @property
    def _app_key(self) -> str:
        return f"__worker_task__{self.name}"

    async def start(self, app: web.Application) -> None:
        app[self._app_key] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        task = app.get(self._app_key)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, now: datetime | None = None) -> dict[str, str | None]:
        """Execute every task once; returns summaries keyed by task name."""
        now = now or datetime.now(timezone.utc)
        summaries: dict[str, str | None] = {}
        for task in self.tasks:
            try:
                summary = await task.fn(now)
            except Exception:
                logger.exception("background_task failed", worker=self.name, task=task.name)
                summaries[task.name] = None
                continue
            summaries[task.name] = summary
            if summary:
                logger.info(
                    "background_task completed",
                    worker=self.name,
                    task=task.name,
                    summary=summary,
                )
        return summaries

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            worker=self.name,
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("background_worker stopped", worker=self.name)
                raise
            except Exception:
                logger.exception("background_worker sweep failed", worker=self.name)
