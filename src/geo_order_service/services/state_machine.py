"""Domain status transition validators."""
from __future__ import annotations

from geo_order_service.core.exceptions import InvalidStatusTransitionError
from geo_order_service.domain.enums import MonitoringStatus, OrderStatus

ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING,
        OrderStatus.FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.COMPLETED,
        OrderStatus.FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.COMPLETED: set(),
    OrderStatus.FAILED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.CANCELLED}
)

MONITORING_TRANSITIONS: dict[MonitoringStatus, set[MonitoringStatus]] = {
    MonitoringStatus.INACTIVE: {MonitoringStatus.ACTIVE, MonitoringStatus.PAUSED},
    MonitoringStatus.ACTIVE: {MonitoringStatus.INACTIVE, MonitoringStatus.PAUSED},
    MonitoringStatus.PAUSED: {MonitoringStatus.ACTIVE, MonitoringStatus.INACTIVE},
}


def _validate_transition(entity: str, current, new, transitions: dict) -> None:
    if current == new:
        return
    allowed = transitions.get(current, set())
    if new not in allowed:
        raise InvalidStatusTransitionError(
            f"Invalid {entity} status transition: {current.value} -> {new.value}"
        )


def validate_order_transition(current: OrderStatus, new: OrderStatus) -> None:
    _validate_transition("order", current, new, ORDER_TRANSITIONS)


def validate_monitoring_transition(current: MonitoringStatus, new: MonitoringStatus) -> None:
    _validate_transition("monitoring", current, new, MONITORING_TRANSITIONS)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_ORDER_STATUSES
