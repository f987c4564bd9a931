from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any

import pydantic
from packages.shared.clock import utcnow
from packages.shared.pricing import money, recompute_totals
from packages.shared.schemas.pricing import CartLineV1, DeliveryOptionV1
from services.api.app.errors import (
    BusinessRuleRejection,
    CouponInvalidError,
    OutOfStockError,
    PipelineError,
    PricingMismatchError,
    ValidationError,
)
from services.api.app.models.order import CheckoutPayload, OrderDetail, OrderItemSnapshot, OrderPublic
from services.api.app.services.coupon_validator import validate_coupon
from services.api.app.services.store import NewOrder, Store

logger = logging.getLogger(__name__)

PRICE_TOLERANCE = Decimal("0.01")

_FIRST_NUMBER = re.compile(r"\d+")


class DeliveryOptionInvalidError(BusinessRuleRejection):
    code = "delivery_option_invalid"


class AddressInvalidError(BusinessRuleRejection):
    code = "address_invalid"


class ProductUnavailableError(BusinessRuleRejection):
    code = "product_unavailable"


def estimated_delivery_days(estimated_days: str) -> int:
    """Lower bound of an option's day range: "2-3" -> 2, "Same day" -> 0."""

    match = _FIRST_NUMBER.search(estimated_days or "")
    return int(match.group(0)) if match else 0


def _error(exc: PipelineError, field: str | None = None) -> PipelineError:
    exc.errors = [{"code": exc.code, "message": exc.message, "field": field}]
    return exc


def _reject(problems: list[PipelineError]) -> None:
    if not problems:
        return
    first = problems[0]
    first.errors = [e for p in problems for e in p.errors]
    raise first


def parse_checkout_payload(payload: dict[str, Any] | CheckoutPayload) -> CheckoutPayload:
    if isinstance(payload, CheckoutPayload):
        return payload
    try:
        return CheckoutPayload.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = [
            {
                "code": "invalid",
                "message": err["msg"],
                "field": ".".join(str(p) for p in err["loc"]) or None,
            }
            for err in e.errors()
        ]
        raise ValidationError("Invalid checkout payload", errors=errors) from e


def place_order(
    store: Store,
    payload: dict[str, Any] | CheckoutPayload,
    user_id: str | None = None,
    *,
    on_placed: Callable[[OrderDetail], Any] | None = None,
    now: datetime | None = None,
) -> OrderPublic:
    """Validate, re-price and persist one order.

    Client-supplied prices and totals are advisory only: everything is recomputed from
    persisted products, the delivery option and the coupon. A rejection persists
    nothing. `on_placed` runs after the commit and its failures never affect the result.
    """

    checkout = parse_checkout_payload(payload)
    now = now or utcnow()
    problems: list[PipelineError] = []

    products = store.get_products([i.product_id for i in checkout.items])
    lines: list[CartLineV1] = []
    for idx, item in enumerate(checkout.items):
        field = f"items.{idx}"
        product = products.get(item.product_id)
        if product is None:
            problems.append(
                _error(ProductUnavailableError(f"Product {item.product_id} not found"), field)
            )
            continue
        if not product.in_stock or product.stock_quantity < item.quantity:
            problems.append(
                _error(
                    OutOfStockError(
                        f"Insufficient stock for {product.name}. "
                        f"Required: {item.quantity}, Available: {product.stock_quantity}"
                    ),
                    f"{field}.quantity",
                )
            )
        if item.unit_price is not None and money(item.unit_price) != product.price:
            problems.append(
                _error(
                    PricingMismatchError(
                        f"Price of {product.name} changed from {money(item.unit_price)} "
                        f"to {product.price}"
                    ),
                    f"{field}.unit_price",
                )
            )
        lines.append(
            CartLineV1(
                product_id=product.id,
                name=product.name,
                unit_price=product.price,
                quantity=item.quantity,
            )
        )

    option: DeliveryOptionV1 | None = store.get_delivery_option(checkout.delivery_option_id)
    if option is None or not option.is_active:
        problems.append(
            _error(
                DeliveryOptionInvalidError("Selected delivery option is not available"),
                "delivery_option_id",
            )
        )

    shipping_address_id: str | None = None
    if checkout.shipping_address_id is not None:
        saved = store.get_address(checkout.shipping_address_id)
        if saved is None or user_id is None or saved.owner_id != user_id:
            problems.append(
                _error(AddressInvalidError("Shipping address not found"), "shipping_address_id")
            )
            delivery_address = ""
        else:
            shipping_address_id = saved.id
            delivery_address = saved.one_line()
    else:
        assert checkout.shipping_address is not None
        delivery_address = checkout.shipping_address.one_line()

    subtotal = money(sum((line.unit_price * line.quantity for line in lines), Decimal(0)))
    coupon = None
    if checkout.coupon_code:
        verdict = validate_coupon(store, checkout.coupon_code, subtotal, owner_id=user_id, now=now)
        if not verdict.valid:
            problems.append(
                _error(CouponInvalidError(verdict.error or "invalid coupon"), "coupon_code")
            )
        else:
            coupon = verdict.coupon

    _reject(problems)
    assert option is not None

    totals = recompute_totals(lines, coupon, option.price, checkout.payment_method)

    if checkout.expected_totals is not None:
        server_values = {
            "subtotal": totals.subtotal,
            "discount_amount": totals.discount_amount,
            "delivery_charge": totals.delivery_charge,
            "payment_surcharge": totals.payment_surcharge,
            "total": totals.final_amount,
        }
        for name, expected in checkout.expected_totals.model_dump().items():
            if expected is None:
                continue
            if abs(money(expected) - server_values[name]) > PRICE_TOLERANCE:
                problems.append(
                    _error(
                        PricingMismatchError(
                            f"{name} is {server_values[name]}, not {money(expected)}"
                        ),
                        f"expected_totals.{name}",
                    )
                )
        _reject(problems)

    estimated = datetime.combine(
        (now + timedelta(days=estimated_delivery_days(option.estimated_days))).date(), time(0, 0)
    )
    new_order = NewOrder(
        customer_name=checkout.customer.name,
        email=checkout.customer.email,
        phone=checkout.customer.phone,
        items=[
            OrderItemSnapshot(
                product_id=line.product_id,
                name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                line_total=money(line.unit_price * line.quantity),
            )
            for line in lines
        ],
        subtotal=totals.subtotal,
        discount_amount=totals.discount_amount,
        delivery_charge=totals.delivery_charge,
        payment_surcharge=totals.payment_surcharge,
        total=totals.final_amount,
        delivery_option_id=option.id,
        delivery_address=delivery_address,
        payment_method=checkout.payment_method.value,
        user_id=user_id,
        coupon_code=coupon.code if coupon is not None else None,
        shipping_address_id=shipping_address_id,
        occasion=checkout.occasion,
        requirements=checkout.requirements,
        delivery_date=(
            datetime.combine(checkout.delivery_date, time(0, 0)) if checkout.delivery_date else None
        ),
        estimated_delivery_date=estimated,
        created_at=now,
    )

    order = store.create_order(new_order)
    logger.info(
        "[CHECKOUT] Order %s placed, total %s, coupon %s",
        order.order_number,
        order.total,
        order.coupon_code or "-",
    )

    if on_placed is not None:
        try:
            on_placed(order)
        except Exception as e:
            logger.error("[CHECKOUT] Post-commit hook failed for %s: %s", order.order_number, e)

    return order.public()
