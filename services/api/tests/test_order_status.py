from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from packages.shared.schemas.order_status import OrderStatusV1, can_transition, tracking_steps
from services.api.app.db.database import db_session
from services.api.app.db.models import User
from services.api.app.errors import (
    AuthRequiredError,
    InvalidStatusTransitionError,
    NotFoundError,
)
from services.api.app.services.order_placement import place_order
from services.api.app.services.order_status import advance_order_status, cancel_order

S = OrderStatusV1


def _points(user_id: str) -> int:
    db = db_session()
    try:
        user = db.get(User, user_id)
        assert user is not None
        return user.points
    finally:
        db.close()


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (S.PENDING, S.CONFIRMED, True),
        (S.CONFIRMED, S.PROCESSING, True),
        (S.PROCESSING, S.SHIPPED, True),
        (S.SHIPPED, S.DELIVERED, True),
        (S.PENDING, S.PROCESSING, False),
        (S.CONFIRMED, S.PENDING, False),
        (S.DELIVERED, S.PENDING, False),
        (S.PENDING, S.CANCELLED, True),
        (S.PROCESSING, S.CANCELLED, True),
        (S.SHIPPED, S.CANCELLED, False),
        (S.CANCELLED, S.PENDING, False),
    ],
)
def test_state_machine(current: S, target: S, allowed: bool) -> None:
    assert can_transition(current, target) is allowed


def test_advance_refuses_skipped_steps(store, make_checkout) -> None:
    order = place_order(store, make_checkout(), "u-1")

    with pytest.raises(InvalidStatusTransitionError):
        advance_order_status(store, order.id, S.PENDING, S.PROCESSING)

    confirmed = advance_order_status(store, order.id, S.PENDING, S.CONFIRMED)
    assert confirmed.status is S.CONFIRMED
    assert confirmed.status_updated_at >= confirmed.created_at


def test_advance_is_conditional_on_current_status(store, make_checkout) -> None:
    order = place_order(store, make_checkout(), "u-1")
    cancel_order(store, order.id, "u-1")

    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        advance_order_status(store, order.id, S.PENDING, S.CONFIRMED)
    assert exc_info.value.current == "cancelled"
    assert store.get_order(order.id).status is S.CANCELLED


def test_processing_awards_points_once(store, make_checkout) -> None:
    order = place_order(store, make_checkout(), "u-1")
    advance_order_status(store, order.id, S.PENDING, S.CONFIRMED)
    processing = advance_order_status(store, order.id, S.CONFIRMED, S.PROCESSING)

    assert processing.points_awarded is True
    assert _points("u-1") == 50

    advance_order_status(store, order.id, S.PROCESSING, S.SHIPPED)
    advance_order_status(store, order.id, S.SHIPPED, S.DELIVERED)
    assert _points("u-1") == 50

    history = [h.status for h in store.get_status_history(order.id)]
    assert history == [S.PENDING, S.CONFIRMED, S.PROCESSING, S.SHIPPED, S.DELIVERED]


def test_cancel_rules(store, make_checkout) -> None:
    order = place_order(store, make_checkout(), "u-1")

    with pytest.raises(AuthRequiredError):
        cancel_order(store, order.id, None)
    with pytest.raises(NotFoundError):
        cancel_order(store, order.id, "u-2")

    cancelled = cancel_order(store, order.id, "u-1")
    assert cancelled.status is S.CANCELLED

    with pytest.raises(InvalidStatusTransitionError):
        cancel_order(store, order.id, "u-1")


def test_shipped_orders_cannot_be_cancelled(store, make_checkout) -> None:
    order = place_order(store, make_checkout(), "u-1")
    for current, nxt in ((S.PENDING, S.CONFIRMED), (S.CONFIRMED, S.PROCESSING), (S.PROCESSING, S.SHIPPED)):
        advance_order_status(store, order.id, current, nxt)

    with pytest.raises(InvalidStatusTransitionError):
        cancel_order(store, order.id, "u-1")
    assert store.get_order(order.id).status is S.SHIPPED


def test_cancelled_tracking_keeps_reached_steps() -> None:
    steps = tracking_steps(S.CANCELLED, {S.PENDING, S.CONFIRMED})
    assert [s.completed for s in steps] == [True, True, False, False, False]

    steps = tracking_steps(S.PROCESSING)
    assert [s.completed for s in steps] == [True, True, True, False, False]


def test_tracking_and_cancel_endpoints(
    client: TestClient, auth_headers: dict, make_checkout
) -> None:
    order = client.post("/api/orders", json=make_checkout(), headers=auth_headers).json()["order"]

    tracking = client.get(f"/api/orders/{order['id']}/tracking", headers=auth_headers)
    assert tracking.status_code == 200
    data = tracking.json()
    assert data["status"] == "pending"
    assert data["can_cancel"] is True
    assert [s["status"] for s in data["steps"]] == [
        "pending",
        "confirmed",
        "processing",
        "shipped",
        "delivered",
    ]
    assert [s["completed"] for s in data["steps"]] == [True, False, False, False, False]
    assert [h["status"] for h in data["history"]] == ["pending"]

    assert client.post(f"/api/orders/{order['id']}/cancel").status_code == 401

    resp = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["order"]["status"] == "cancelled"

    again = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_status_transition"

    data = client.get(f"/api/orders/{order['id']}/tracking", headers=auth_headers).json()
    assert data["can_cancel"] is False
    assert [s["completed"] for s in data["steps"]] == [True, False, False, False, False]


def test_tracking_unknown_order_is_404(client: TestClient) -> None:
    resp = client.get("/api/orders/missing/tracking")
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"
