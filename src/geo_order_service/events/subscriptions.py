"""Per-connection subscription management for live event streams."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol
from uuid import UUID, uuid4

import structlog

from geo_order_service.core.exceptions import SubscriptionLimitError
from geo_order_service.domain.enums import EventType
from geo_order_service.events.broadcaster import EventBroadcaster, Listener

logger = structlog.get_logger(__name__)

STREAM_EVENT_TYPES: tuple[str, ...] = tuple(item.value for item in EventType)

FrameFilter = Callable[[str, Any], bool]

_CLOSED = object()


class StreamConnection(Protocol):
    """Outbound side of one client connection."""

    async def send_frame(self, frame: dict[str, Any]) -> None: ...

    async def send_heartbeat(self) -> None: ...


class Subscription:
    """One live connection: its listeners, its outbound queue and its heartbeat loop."""

    def __init__(
        self,
        multiplexer: "SubscriptionMultiplexer",
        owner_id: UUID,
        connection: StreamConnection,
        *,
        queue_size: int,
        frame_filter: FrameFilter | None = None,
    ):
        self.id = uuid4()
        self.owner_id = owner_id
        self.connection = connection
        self.event_types: set[str] = set()
        self._multiplexer = multiplexer
        self._frame_filter = frame_filter
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._registrations: list[tuple[str, Listener]] = []
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def registrations(self) -> list[tuple[str, Listener]]:
        return list(self._registrations)

    def _register(self, topic: str, event_type: str) -> None:
        self._multiplexer.broadcaster.subscribe(topic, self._on_event)
        self._registrations.append((topic, self._on_event))
        self.event_types.add(event_type)

    def _on_event(self, event_type: str, data: Any) -> None:
        if self._closed:
            return
        if self._frame_filter is not None and not self._frame_filter(event_type, data):
            return
        try:
            self._queue.put_nowait({"type": event_type, "data": data})
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "subscription queue full, dropping frame",
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                event_type=event_type,
            )

    async def serve(self, heartbeat_seconds: float, *, max_frames: int | None = None) -> None:
        """Pump queued frames to the connection until it breaks, is closed or sent ``max_frames``.

        The heartbeat is idle-based: it is written once ``heartbeat_seconds``
        pass without a frame, so a busy stream carries no heartbeats at all.
        """
        sent = 0
        try:
            while not self._closed:
                try:
                    frame = await asyncio.wait_for(self._queue.get(), timeout=heartbeat_seconds)
                except asyncio.TimeoutError:
                    await self.connection.send_heartbeat()
                    continue
                if frame is _CLOSED:
                    break
                await self.connection.send_frame(frame)
                sent += 1
                if max_frames is not None and sent >= max_frames:
                    break
        except (ConnectionError, RuntimeError) as exc:
            logger.info(
                "subscription connection lost",
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                error=str(exc),
            )
        finally:
            self.close()

    def close(self) -> None:
        """Deregister every listener of this connection. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        broadcaster = self._multiplexer.broadcaster
        for topic, listener in self._registrations:
            broadcaster.unsubscribe(topic, listener)
        self._registrations.clear()
        # wake a serve() loop blocked on an empty queue
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        self._multiplexer._forget(self)
        logger.info(
            "subscription closed",
            subscription_id=str(self.id),
            owner_id=str(self.owner_id),
            dropped=self.dropped,
        )


class SubscriptionMultiplexer:
    def __init__(
        self,
        broadcaster: EventBroadcaster,
        *,
        heartbeat_seconds: float = 30.0,
        queue_size: int = 100,
    ):
        self.broadcaster = broadcaster
        self.heartbeat_seconds = heartbeat_seconds
        self._queue_size = queue_size
        self._active: dict[UUID, Subscription] = {}

    @property
    def active_count(self) -> int:
        return len(self._active)

    def open(
        self,
        owner_id: UUID,
        connection: StreamConnection,
        *,
        include_global: bool = True,
        frame_filter: FrameFilter | None = None,
    ) -> Subscription:
        """Register owner-scoped (and optionally global) listeners for every stream event type."""
        subscription = Subscription(
            self,
            owner_id,
            connection,
            queue_size=self._queue_size,
            frame_filter=frame_filter,
        )
        self._active[subscription.id] = subscription
        try:
            for event_type in STREAM_EVENT_TYPES:
                subscription._register(
                    EventBroadcaster.topic_for(event_type, owner_id), event_type
                )
                if include_global:
                    subscription._register(EventBroadcaster.topic_for(event_type), event_type)
        except SubscriptionLimitError:
            subscription.close()
            raise
        logger.info(
            "subscription opened",
            subscription_id=str(subscription.id),
            owner_id=str(owner_id),
            listeners=len(subscription.registrations),
        )
        return subscription

    async def run(self, subscription: Subscription, *, max_frames: int | None = None) -> None:
        await subscription.serve(self.heartbeat_seconds, max_frames=max_frames)

    def _forget(self, subscription: Subscription) -> None:
        self._active.pop(subscription.id, None)

    async def close_all(self) -> None:
        for subscription in list(self._active.values()):
            subscription.close()
