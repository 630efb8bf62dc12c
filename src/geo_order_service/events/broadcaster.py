"""In-process publish/subscribe hub for resource lifecycle events."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable
from uuid import UUID

import structlog

from geo_order_service.core.exceptions import SubscriptionLimitError

logger = structlog.get_logger(__name__)

# Listeners must not block: they hand the event to a queue and return.
Listener = Callable[[str, Any], None]


class EventBroadcaster:
    """Topic registry keyed by ``event_type`` and ``event_type:owner_id``.

    Delivery is fire-to-whoever-is-attached: nothing is buffered, so a
    listener registered after an event was published never sees it. The hub
    is process-local.
    """

    def __init__(self, max_subscribers: int = 1000):
        self._max_subscribers = max_subscribers
        self._topics: dict[str, list[Listener]] = defaultdict(list)
        self._count = 0

    @staticmethod
    def topic_for(event_type: str, owner_id: UUID | str | None = None) -> str:
        if owner_id is None:
            return event_type
        return f"{event_type}:{owner_id}"

    def listener_count(self, topic: str | None = None) -> int:
        if topic is None:
            return self._count
        return len(self._topics.get(topic, ()))

    def subscribe(self, topic: str, listener: Listener) -> None:
        if self._count >= self._max_subscribers:
            logger.warning(
                "subscriber limit reached",
                topic=topic,
                max_subscribers=self._max_subscribers,
            )
            raise SubscriptionLimitError("Too many live subscriptions")
        self._topics[topic].append(listener)
        self._count += 1

    def unsubscribe(self, topic: str, listener: Listener) -> bool:
        listeners = self._topics.get(topic)
        if not listeners:
            return False
        try:
            listeners.remove(listener)
        except ValueError:
            return False
        self._count -= 1
        if not listeners:
            del self._topics[topic]
        return True

    def _dispatch(self, topic: str, event_type: str, data: Any) -> int:
        # snapshot so a listener may unsubscribe itself during dispatch
        listeners = tuple(self._topics.get(topic, ()))
        delivered = 0
        for listener in listeners:
            try:
                listener(event_type, data)
            except Exception:
                logger.exception("event listener failed", topic=topic)
                continue
            delivered += 1
        return delivered

    def broadcast(self, event_type: str, data: Any) -> int:
        """Deliver to every listener of ``event_type`` regardless of owner."""
        return self._dispatch(self.topic_for(event_type), event_type, data)

    def publish_to_owner(self, owner_id: UUID | str, event_type: str, data: Any) -> int:
        """Deliver only to listeners scoped to both ``event_type`` and ``owner_id``."""
        delivered = self._dispatch(self.topic_for(event_type, owner_id), event_type, data)
        logger.debug(
            "event published",
            event_type=event_type,
            owner_id=str(owner_id),
            listeners=delivered,
        )
        return delivered
