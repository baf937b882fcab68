"""
Order state machine. Orders only ever leave 'pending', and only once.
"""
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.COMPLETED, OrderStatus.FAILED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.FAILED: set(),
}


class InvalidOrderTransition(Exception):
    """Raised on a forbidden order status change. Indicates a bug, never a user error."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Order cannot move from {current} to {target}")
        self.current = current
        self.target = target


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in (OrderStatus.COMPLETED, OrderStatus.FAILED)


def transition(order, target: OrderStatus) -> None:
    """Move order to target status or raise InvalidOrderTransition."""
    current = OrderStatus(order.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidOrderTransition(current.value, target.value)
    order.status = target.value
