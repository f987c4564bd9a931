from __future__ import annotations

import logging
from datetime import datetime

from packages.shared.schemas.order_status import (
    CANCELLABLE_STATUSES,
    OrderStatusV1,
    OrderTrackingV1,
    tracking_steps,
)
from services.api.app.errors import AuthRequiredError, NotFoundError
from services.api.app.models.order import OrderDetail
from services.api.app.services.store import Store

logger = logging.getLogger(__name__)


def get_visible_order(store: Store, order_id: str, user_id: str | None) -> OrderDetail:
    """Load an order the caller may see.

    Guest orders are visible to anyone holding the id; account orders only to their owner.
    """

    order = store.get_order(order_id)
    if order is None or (order.user_id is not None and order.user_id != user_id):
        raise NotFoundError("Order not found")
    return order


def advance_order_status(
    store: Store,
    order_id: str,
    expected_current: OrderStatusV1,
    next_status: OrderStatusV1,
    *,
    note: str | None = None,
    now: datetime | None = None,
) -> OrderDetail:
    order = store.advance_order_status(
        order_id, expected_current, next_status, note=note, now=now
    )
    logger.info(
        "[STATUS] Order %s moved %s -> %s",
        order.order_number,
        expected_current.value,
        next_status.value,
    )
    return order


def cancel_order(
    store: Store, order_id: str, user_id: str | None, *, now: datetime | None = None
) -> OrderDetail:
    if user_id is None:
        raise AuthRequiredError()

    order = store.get_order(order_id)
    if order is None or order.user_id != user_id:
        raise NotFoundError("Order not found")

    cancelled = store.cancel_order(order_id, note="Cancelled by customer", now=now)
    logger.info("[STATUS] Order %s cancelled by its owner", cancelled.order_number)
    return cancelled


def get_tracking(store: Store, order_id: str, user_id: str | None) -> OrderTrackingV1:
    order = get_visible_order(store, order_id, user_id)
    history = store.get_status_history(order_id)
    reached = {h.status for h in history if h.status is not OrderStatusV1.CANCELLED}

    return OrderTrackingV1(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        status_updated_at=order.status_updated_at,
        estimated_delivery_date=order.estimated_delivery_date,
        steps=tracking_steps(order.status, reached),
        history=history,
        can_cancel=order.status in CANCELLABLE_STATUSES,
    )
