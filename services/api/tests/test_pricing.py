from __future__ import annotations

from decimal import Decimal

import pytest
from packages.shared.pricing import coupon_discount, money, payment_surcharge, recompute_totals
from packages.shared.schemas.pricing import AppliedCouponV1, CartLineV1, DiscountKindV1

ROSES = CartLineV1(product_id="rose", name="Roses", unit_price=Decimal("1500"), quantity=1)
LILIES = CartLineV1(product_id="lily", name="Lilies", unit_price=Decimal("800"), quantity=1)

SAVE10 = AppliedCouponV1(
    code="save10",
    kind=DiscountKindV1.PERCENTAGE,
    value=Decimal("10"),
    max_discount=Decimal("150"),
    min_order_amount=Decimal("1000"),
)
FLAT500 = AppliedCouponV1(code="FLAT500", kind=DiscountKindV1.FIXED, value=Decimal("500"))


def test_percentage_coupon_is_capped_by_max_discount() -> None:
    totals = recompute_totals([ROSES, LILIES], SAVE10, Decimal("100"))

    assert totals.item_count == 2
    assert totals.subtotal == Decimal("2300.00")
    assert totals.discount_amount == Decimal("150.00")
    assert totals.final_amount == Decimal("2250.00")


def test_fixed_coupon_never_exceeds_subtotal() -> None:
    small = CartLineV1(product_id="card", name="Card", unit_price=Decimal("300"), quantity=1)
    totals = recompute_totals([small], FLAT500, Decimal("100"))

    assert totals.discount_amount == Decimal("300.00")
    assert totals.final_amount == totals.delivery_charge == Decimal("100.00")


def test_coupon_codes_are_upper_cased() -> None:
    assert SAVE10.code == "SAVE10"


@pytest.mark.parametrize(
    ("kind", "value", "subtotal", "max_discount", "expected"),
    [
        (DiscountKindV1.PERCENTAGE, "10", "999.99", None, "100.00"),
        (DiscountKindV1.PERCENTAGE, "100", "250", None, "250.00"),
        (DiscountKindV1.PERCENTAGE, "150", "250", None, "250.00"),
        (DiscountKindV1.PERCENTAGE, "20", "1000", "50", "50.00"),
        (DiscountKindV1.FIXED, "500", "499.50", None, "499.50"),
        (DiscountKindV1.FIXED, "50", "0", None, "0.00"),
    ],
)
def test_coupon_discount_bounds(
    kind: DiscountKindV1, value: str, subtotal: str, max_discount: str | None, expected: str
) -> None:
    discount = coupon_discount(
        kind, Decimal(value), Decimal(subtotal), Decimal(max_discount) if max_discount else None
    )
    assert discount == Decimal(expected)
    assert Decimal(0) <= discount <= money(subtotal)


@pytest.mark.parametrize(
    ("method", "base", "expected"),
    [
        ("Card", "1100", "22.00"),
        ("Online", "2250", "45.00"),
        ("Card", "100", "5.00"),
        ("COD", "2250", "0.00"),
        ("UPI", "2250", "0.00"),
        (None, "2250", "0.00"),
    ],
)
def test_payment_surcharge(method: str | None, base: str, expected: str) -> None:
    assert payment_surcharge(method, Decimal(base)) == Decimal(expected)


def test_surcharge_is_taken_on_discounted_subtotal_plus_delivery() -> None:
    totals = recompute_totals([ROSES, LILIES], SAVE10, Decimal("100"), "Card")

    # (2300 - 150 + 100) * 2%
    assert totals.payment_surcharge == Decimal("45.00")
    assert totals.final_amount == Decimal("2295.00")


def test_empty_cart_has_no_surcharge() -> None:
    totals = recompute_totals([], None, Decimal("100"), "Card")

    assert totals.item_count == 0
    assert totals.subtotal == Decimal("0.00")
    assert totals.payment_surcharge == Decimal("0.00")


def test_money_rounds_half_up() -> None:
    assert money("1.005") == Decimal("1.01")
    assert money("2.004") == Decimal("2.00")
    assert money(None) == Decimal("0.00")


@pytest.mark.parametrize(
    ("coupon", "delivery", "method"),
    [
        (None, None, None),
        (SAVE10, Decimal("100"), "Card"),
        (FLAT500, Decimal("300"), "Online"),
        (SAVE10, Decimal("0"), "UPI"),
    ],
)
def test_recompute_totals_is_idempotent(coupon, delivery, method) -> None:
    items = [ROSES, LILIES.model_copy(update={"quantity": 3})]
    snapshot = [line.model_copy() for line in items]
    coupon_snapshot = coupon.model_copy() if coupon is not None else None

    first = recompute_totals(items, coupon, delivery, method)
    second = recompute_totals(items, coupon, delivery, method)

    assert first == second
    assert first.model_dump() == second.model_dump()
    assert items == snapshot
    assert coupon == coupon_snapshot
