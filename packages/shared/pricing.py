"""Cart pricing shared by the client cart engine and the order placement service.

Every cart mutation and every server-side re-pricing goes through `recompute_totals`.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from packages.shared.schemas.pricing import (
    AppliedCouponV1,
    CartLineV1,
    CartTotalsV1,
    DiscountKindV1,
    PaymentMethodV1,
)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

SURCHARGED_PAYMENT_METHODS = frozenset({PaymentMethodV1.CARD, PaymentMethodV1.ONLINE})
PAYMENT_SURCHARGE_RATE = Decimal("0.02")
PAYMENT_SURCHARGE_MINIMUM = Decimal("5.00")


def money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def coupon_discount(
    kind: DiscountKindV1 | str,
    value: Decimal,
    subtotal: Decimal,
    max_discount: Decimal | None = None,
) -> Decimal:
    """Discount a coupon grants on `subtotal`.

    Percentage discounts are taken on the subtotal only and capped at `max_discount`.
    The result never exceeds the subtotal, so the discounted subtotal is never negative.
    """

    subtotal = money(subtotal)
    if subtotal <= 0:
        return ZERO

    kind = DiscountKindV1(kind)
    if kind is DiscountKindV1.PERCENTAGE:
        discount = money(subtotal * Decimal(str(value)) / Decimal(100))
        if max_discount is not None:
            discount = min(discount, money(max_discount))
    else:
        discount = money(value)

    return max(ZERO, min(discount, subtotal))


def payment_surcharge(method: PaymentMethodV1 | str | None, base: Decimal) -> Decimal:
    if method is None or PaymentMethodV1(method) not in SURCHARGED_PAYMENT_METHODS:
        return ZERO
    return max(money(money(base) * PAYMENT_SURCHARGE_RATE), PAYMENT_SURCHARGE_MINIMUM)


def recompute_totals(
    items: Iterable[CartLineV1],
    coupon: AppliedCouponV1 | None = None,
    delivery_charge: Decimal | None = None,
    payment_method: PaymentMethodV1 | str | None = None,
) -> CartTotalsV1:
    items = list(items)
    item_count = sum(line.quantity for line in items)
    subtotal = money(sum((money(line.unit_price) * line.quantity for line in items), ZERO))

    discount = ZERO
    if coupon is not None:
        discount = coupon_discount(coupon.kind, coupon.value, subtotal, coupon.max_discount)

    delivery = money(delivery_charge)
    discounted = max(ZERO, subtotal - discount)

    surcharge = ZERO
    if item_count > 0:
        surcharge = payment_surcharge(payment_method, discounted + delivery)

    return CartTotalsV1(
        item_count=item_count,
        subtotal=subtotal,
        discount_amount=discount,
        delivery_charge=delivery,
        payment_surcharge=surcharge,
        final_amount=discounted + delivery + surcharge,
    )
