"""Shared order status schema (v1).

Fulfillment is a linear state machine. `CANCELLED` is terminal and only reachable from
the statuses listed in `CANCELLABLE_STATUSES`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class OrderStatusV1(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


PROGRESSION: tuple[OrderStatusV1, ...] = (
    OrderStatusV1.PENDING,
    OrderStatusV1.CONFIRMED,
    OrderStatusV1.PROCESSING,
    OrderStatusV1.SHIPPED,
    OrderStatusV1.DELIVERED,
)

CANCELLABLE_STATUSES = frozenset(
    {OrderStatusV1.PENDING, OrderStatusV1.CONFIRMED, OrderStatusV1.PROCESSING}
)

STEP_LABELS: dict[OrderStatusV1, str] = {
    OrderStatusV1.PENDING: "Order placed",
    OrderStatusV1.CONFIRMED: "Order confirmed",
    OrderStatusV1.PROCESSING: "Being arranged",
    OrderStatusV1.SHIPPED: "Out for delivery",
    OrderStatusV1.DELIVERED: "Delivered",
}


def next_status(status: OrderStatusV1 | str) -> OrderStatusV1 | None:
    status = OrderStatusV1(status)
    if status not in PROGRESSION:
        return None
    idx = PROGRESSION.index(status)
    if idx + 1 >= len(PROGRESSION):
        return None
    return PROGRESSION[idx + 1]


def can_transition(current: OrderStatusV1 | str, target: OrderStatusV1 | str) -> bool:
    current = OrderStatusV1(current)
    target = OrderStatusV1(target)
    if target is OrderStatusV1.CANCELLED:
        return current in CANCELLABLE_STATUSES
    return next_status(current) is target


class TrackingStepV1(BaseModel):
    status: OrderStatusV1
    label: str
    completed: bool


class StatusHistoryEntryV1(BaseModel):
    status: OrderStatusV1
    note: str | None = None
    changed_at: str


class OrderTrackingV1(BaseModel):
    order_id: str
    order_number: str
    status: OrderStatusV1
    status_updated_at: str | None = None
    estimated_delivery_date: str | None = None
    steps: list[TrackingStepV1] = Field(default_factory=list)
    history: list[StatusHistoryEntryV1] = Field(default_factory=list)
    can_cancel: bool = False


def tracking_steps(
    status: OrderStatusV1 | str,
    reached: set[OrderStatusV1] | None = None,
) -> list[TrackingStepV1]:
    """Fixed progress steps with completion flags.

    For a cancelled order the completed steps are the ones found in `reached`
    (normally taken from the status history).
    """

    status = OrderStatusV1(status)
    if status is OrderStatusV1.CANCELLED:
        done = reached or set()
        return [
            TrackingStepV1(status=step, label=STEP_LABELS[step], completed=step in done)
            for step in PROGRESSION
        ]

    idx = PROGRESSION.index(status)
    return [
        TrackingStepV1(status=step, label=STEP_LABELS[step], completed=i <= idx)
        for i, step in enumerate(PROGRESSION)
    ]
