"""Route modules."""

from . import events, monitoring, orders, webhooks

__all__ = ["events", "monitoring", "orders", "webhooks"]
