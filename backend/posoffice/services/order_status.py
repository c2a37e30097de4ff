# Overview: Order status enumeration and the transition table.

"""
Order Status Transitions

CREATED is the only initial state. Every status change goes through
require_transition(); anything not listed in ALLOWED_TRANSITIONS fails with
InvalidTransition before any mutation happens.

Item mutation (add/update/remove) is only allowed while the order is in
ITEM_MUTABLE_STATUSES; otherwise OrderLocked.
"""

from __future__ import annotations

from enum import Enum

from ..errors import InvalidTransition, OrderLocked, ValidationError


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    INVOICED = "INVOICED"
    CANCELLED = "CANCELLED"


INITIAL_STATUS = OrderStatus.CREATED

ALLOWED_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset({
    (OrderStatus.CREATED, OrderStatus.INVOICED),
    (OrderStatus.CREATED, OrderStatus.CANCELLED),
})

ITEM_MUTABLE_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.CREATED})

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    status for status in OrderStatus
    if not any(src == status for src, _ in ALLOWED_TRANSITIONS)
)


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("status is required")
    try:
        return OrderStatus(value.strip().upper())
    except ValueError:
        raise ValidationError(
            f"Invalid status: {value}",
            details={"allowed": [s.value for s in OrderStatus]},
        )


def can_transition(current, target) -> bool:
    """
    True when current -> target is listed in the transition table.

    A same-status update is a no-op and is permitted only while the order
    is still item-mutable (e.g. editing customer info on a CREATED order).
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    if current == target:
        return current in ITEM_MUTABLE_STATUSES
    return (current, target) in ALLOWED_TRANSITIONS


def require_transition(current, target) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot transition order from {OrderStatus(current).value} to {OrderStatus(target).value}",
            details={
                "from": OrderStatus(current).value,
                "to": OrderStatus(target).value,
                "allowed": sorted(t.value for s, t in ALLOWED_TRANSITIONS if s == OrderStatus(current)),
            },
        )


def require_item_mutable(order) -> None:
    if OrderStatus(order.status) not in ITEM_MUTABLE_STATUSES:
        raise OrderLocked(
            f"Cannot modify items of a {order.status} order",
            details={"order_id": order.id, "status": order.status},
        )
