from __future__ import annotations

import re
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from packages.shared.clock import utcnow
from services.api.app.errors import CouponInvalidError, OutOfStockError, PersistenceError
from services.api.app.services.order_placement import estimated_delivery_days, place_order
from services.api.app.services.store import SqlStore
from services.api.tests.helpers import count_orders, coupon_times_used, stock_of, wait_for

ORDER_NUMBER = re.compile(r"^ORD-\d{6}-\d{4}$")


def test_valid_order_creates_exactly_one_order(client: TestClient, make_checkout) -> None:
    resp = client.post("/api/orders", json=make_checkout())
    assert resp.status_code == 201

    data = resp.json()
    assert data["success"] is True
    order = data["order"]
    assert ORDER_NUMBER.match(order["order_number"])
    assert order["order_number"].endswith("-0001")
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert Decimal(order["subtotal"]) == Decimal("2300")
    assert Decimal(order["delivery_charge"]) == Decimal("100")
    assert Decimal(order["total"]) == Decimal("2400")
    assert order["estimated_delivery_date"]
    # Public projection only.
    assert "email" not in order
    assert "phone" not in order

    assert count_orders() == 1
    assert stock_of("rose-red-12") == 9
    assert stock_of("lily-white-6") == 9


def test_confirmation_is_sent_after_commit(client: TestClient, make_checkout) -> None:
    client.post("/api/orders", json=make_checkout())

    provider = client.app.state.dispatcher.provider
    assert wait_for(lambda: len(provider.sent) == 2)
    assert {m.channel for m in provider.sent} == {"sms", "whatsapp"}
    assert all(m.to == "+919876543210" for m in provider.sent)


def test_order_numbers_are_sequential_within_month(store, make_checkout) -> None:
    first = place_order(store, make_checkout())
    second = place_order(store, make_checkout())

    prefix = f"ORD-{utcnow():%Y%m}-"
    assert first.order_number == f"{prefix}0001"
    assert second.order_number == f"{prefix}0002"


def test_coupon_and_card_surcharge_are_repriced_server_side(
    client: TestClient, make_checkout
) -> None:
    resp = client.post(
        "/api/orders",
        json=make_checkout(coupon_code="save10", payment_method="Card"),
    )
    assert resp.status_code == 201

    order = resp.json()["order"]
    assert order["coupon_code"] == "SAVE10"
    assert Decimal(order["discount_amount"]) == Decimal("150")
    assert Decimal(order["payment_surcharge"]) == Decimal("45")
    assert Decimal(order["total"]) == Decimal("2295")
    assert coupon_times_used("SAVE10") == 1


def test_malformed_payload_is_422_with_field_errors(client: TestClient, make_checkout) -> None:
    payload = make_checkout()
    del payload["customer"]
    payload["items"] = []

    resp = client.post("/api/orders", json=payload)
    assert resp.status_code == 422

    data = resp.json()
    assert data["success"] is False
    fields = {e["field"] for e in data["errors"]}
    assert "customer" in fields
    assert "items" in fields
    assert count_orders() == 0


def test_missing_body_is_422(client: TestClient) -> None:
    resp = client.post("/api/orders")
    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_both_address_forms_are_rejected(client: TestClient, make_checkout) -> None:
    resp = client.post("/api/orders", json=make_checkout(shipping_address_id="addr-1"))
    assert resp.status_code == 422


@pytest.mark.parametrize(
    ("overrides", "code", "field"),
    [
        (
            {"items": [{"product_id": "rose-red-12", "quantity": 11}]},
            "out_of_stock",
            "items.0.quantity",
        ),
        ({"items": [{"product_id": "tulip-mixed", "quantity": 1}]}, "out_of_stock", "items.0.quantity"),
        ({"items": [{"product_id": "ghost", "quantity": 1}]}, "product_unavailable", "items.0"),
        (
            {"items": [{"product_id": "rose-red-12", "quantity": 1, "unit_price": "1400"}]},
            "pricing_mismatch",
            "items.0.unit_price",
        ),
        ({"delivery_option_id": "retired"}, "delivery_option_invalid", "delivery_option_id"),
        ({"delivery_option_id": "nowhere"}, "delivery_option_invalid", "delivery_option_id"),
        ({"coupon_code": "EXPIRED"}, "coupon_invalid", "coupon_code"),
        ({"expected_totals": {"total": "2300"}}, "pricing_mismatch", "expected_totals.total"),
    ],
)
def test_business_rejections_persist_nothing(
    client: TestClient, make_checkout, overrides: dict, code: str, field: str
) -> None:
    payload = make_checkout(**overrides)
    if "coupon_code" not in overrides:
        payload["coupon_code"] = "SAVE10"

    resp = client.post("/api/orders", json=payload)
    assert resp.status_code == 409

    data = resp.json()
    assert data["success"] is False
    assert data["code"] == code
    assert any(e["code"] == code and e["field"] == field for e in data["errors"])
    assert count_orders() == 0
    assert coupon_times_used("SAVE10") == 0
    assert stock_of("rose-red-12") == 10


def test_matching_expected_totals_are_accepted(client: TestClient, make_checkout) -> None:
    resp = client.post(
        "/api/orders",
        json=make_checkout(
            expected_totals={"subtotal": "2300.00", "total": "2400.004"},
        ),
    )
    assert resp.status_code == 201


def test_coupon_usage_limit_is_enforced(store, make_checkout) -> None:
    place_order(store, make_checkout(coupon_code="LASTONE"))

    with pytest.raises(CouponInvalidError):
        place_order(store, make_checkout(coupon_code="LASTONE"))
    assert coupon_times_used("LASTONE") == 1
    assert count_orders() == 1


def test_last_unit_can_only_be_sold_once(store, make_checkout) -> None:
    items = [{"product_id": "orchid-purple", "quantity": 1}]
    place_order(store, make_checkout(items=items))

    with pytest.raises(OutOfStockError):
        place_order(store, make_checkout(items=items))
    assert stock_of("orchid-purple") == 0


class _UnavailableStore(SqlStore):
    def create_order(self, new_order):
        raise PersistenceError()


def test_persistence_failure_is_retryable_503(client: TestClient, make_checkout) -> None:
    client.app.state.store = _UnavailableStore()

    resp = client.post("/api/orders", json=make_checkout())
    assert resp.status_code == 503
    data = resp.json()
    assert data["success"] is False
    assert data["retryable"] is True
    assert count_orders() == 0


class _BrokenStore(SqlStore):
    def get_products(self, product_ids):
        raise RuntimeError("connection string leaked here")


def test_unexpected_failure_is_generic_500(client: TestClient, make_checkout) -> None:
    client.app.state.store = _BrokenStore()

    resp = client.post("/api/orders", json=make_checkout())
    assert resp.status_code == 500
    assert "leaked" not in resp.text
    assert resp.json()["message"] == "Internal Server Error"


def test_signed_in_checkout_clears_cart(
    client: TestClient, auth_headers: dict, make_checkout
) -> None:
    client.post(
        "/api/cart/items", json={"product_id": "rose-red-12", "quantity": 2}, headers=auth_headers
    )

    resp = client.post("/api/orders", json=make_checkout(), headers=auth_headers)
    assert resp.status_code == 201

    cart = client.get("/api/cart", headers=auth_headers).json()
    assert cart["items"] == []

    mine = client.get("/api/orders", headers=auth_headers).json()
    assert [o["id"] for o in mine] == [resp.json()["order"]["id"]]


def test_saved_address_must_belong_to_caller(
    client: TestClient, auth_headers: dict, make_checkout
) -> None:
    address = make_checkout()["shipping_address"]
    other = {"Authorization": f"Bearer {client.app.state.sessions.issue('u-2')}"}
    theirs = client.post("/api/addresses", json=address, headers=other).json()
    mine = client.post("/api/addresses", json=address, headers=auth_headers).json()

    payload = make_checkout(shipping_address_id=theirs["id"])
    del payload["shipping_address"]
    resp = client.post("/api/orders", json=payload, headers=auth_headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "address_invalid"

    payload["shipping_address_id"] = mine["id"]
    resp = client.post("/api/orders", json=payload, headers=auth_headers)
    assert resp.status_code == 201


def test_guest_order_is_readable_by_id(client: TestClient, make_checkout) -> None:
    order = client.post("/api/orders", json=make_checkout()).json()["order"]

    resp = client.get(f"/api/orders/{order['id']}")
    assert resp.status_code == 200
    assert resp.json()["order_number"] == order["order_number"]


def test_account_order_is_hidden_from_others(
    client: TestClient, auth_headers: dict, make_checkout
) -> None:
    order = client.post("/api/orders", json=make_checkout(), headers=auth_headers).json()["order"]

    assert client.get(f"/api/orders/{order['id']}").status_code == 404
    assert client.get(f"/api/orders/{order['id']}", headers=auth_headers).status_code == 200


@pytest.mark.parametrize(
    ("text", "days"),
    [("2-3", 2), ("1", 1), ("Same day", 0), ("5-7 days", 5), ("", 0)],
)
def test_estimated_delivery_days(text: str, days: int) -> None:
    assert estimated_delivery_days(text) == days
