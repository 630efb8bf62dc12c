"""Bounded runner for detached background work (provider sync, webhook delivery).

Request handlers hand work to :class:`BackgroundTaskRunner` and return
immediately. The runner keeps a handle to every task, caps how many run at
once, and records failures in a bounded dead-letter history instead of letting
them vanish into the event loop's default exception handler.
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

CoroFactory = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class FailedTask:
    name: str
    error: str
    error_type: str
    context: dict[str, Any] = field(default_factory=dict)
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "error": self.error,
            "error_type": self.error_type,
            "context": self.context,
            "failed_at": self.failed_at.isoformat(),
        }


class BackgroundTaskRunner:
    def __init__(self, *, max_concurrency: int = 50, failure_history: int = 200):
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._failures: deque[FailedTask] = deque(maxlen=failure_history)
        self._failed_total = 0
        self._completed_total = 0
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def failures(self) -> list[FailedTask]:
        return list(self._failures)

    def stats(self) -> dict[str, Any]:
        return {
            "pending": self.pending,
            "completed": self._completed_total,
            "failed": self._failed_total,
        }

    def spawn(self, name: str, factory: CoroFactory, **context: Any) -> asyncio.Task:
        """Schedule ``factory()`` in the background and return its task handle."""
        if self._closed:
            raise RuntimeError("Background task runner is stopped")
        task = asyncio.create_task(self._run(name, factory, context), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, factory: CoroFactory, context: dict[str, Any]) -> None:
        async with self._semaphore:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.warning("background task cancelled", task=name, **context)
                raise
            except Exception as exc:
                self._failed_total += 1
                self._failures.append(
                    FailedTask(
                        name=name,
                        error=str(exc),
                        error_type=type(exc).__name__,
                        context={k: str(v) for k, v in context.items()},
                    )
                )
                logger.exception("background task failed", task=name, **context)
            else:
                self._completed_total += 1

    async def drain(self) -> None:
        """Wait until every task spawned so far (and any they spawn) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self, timeout: float = 5.0) -> None:
        """Refuse new work, give running tasks ``timeout`` seconds, then cancel the rest."""
        self._closed = True
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(list(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("background tasks cancelled on shutdown", count=len(still_running))
