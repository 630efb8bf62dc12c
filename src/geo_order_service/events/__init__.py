"""Live event fan-out: broadcaster hub, subscriptions and the SSE adapter."""

from geo_order_service.events.broadcaster import EventBroadcaster
from geo_order_service.events.subscriptions import Subscription, SubscriptionMultiplexer

__all__ = ["EventBroadcaster", "Subscription", "SubscriptionMultiplexer"]
