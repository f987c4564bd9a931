from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from packages.shared.clock import utcnow
from packages.shared.pricing import coupon_discount, money
from packages.shared.schemas.pricing import AppliedCouponV1
from services.api.app.models.coupon import CouponValidateResponse
from services.api.app.services.store import CouponRecord, Store

logger = logging.getLogger(__name__)


def _invalid(error: str) -> CouponValidateResponse:
    return CouponValidateResponse(valid=False, error=error)


def applied_coupon(record: CouponRecord) -> AppliedCouponV1:
    return AppliedCouponV1(
        code=record.code,
        kind=record.kind,
        value=record.value,
        max_discount=record.max_discount,
        min_order_amount=record.min_order_amount,
        description=record.description,
    )


def validate_coupon(
    store: Store,
    code: str,
    cart_subtotal: Decimal,
    owner_id: str | None = None,
    now: datetime | None = None,
) -> CouponValidateResponse:
    """Check a coupon against a cart subtotal.

    Checks run in a fixed order and the first failure is reported: existence, active
    flag, start date, expiry, global usage limit, per-owner usage limit, minimum order
    amount. Business failures are returned as an invalid verdict, never raised.
    """

    normalized = code.strip().upper()
    subtotal = money(cart_subtotal)
    now = now or utcnow()

    record = store.get_coupon(normalized) if normalized else None
    if record is None:
        logger.info("[COUPON] Unknown code %r", normalized)
        return _invalid("Invalid coupon code")

    if not record.is_active:
        return _invalid("This coupon is no longer active")

    if record.starts_at is not None and now < record.starts_at:
        return _invalid("This coupon is not yet valid")

    if record.expires_at is not None and now > record.expires_at:
        return _invalid("This coupon has expired")

    if record.usage_limit is not None and record.times_used >= record.usage_limit:
        return _invalid("This coupon has reached its usage limit")

    if owner_id and record.per_user_limit is not None:
        if store.count_coupon_uses(normalized, owner_id) >= record.per_user_limit:
            return _invalid("You have already used this coupon")

    if record.min_order_amount is not None and subtotal < record.min_order_amount:
        return _invalid(f"Minimum order amount of ₹{record.min_order_amount} required")

    discount = coupon_discount(record.kind, record.value, subtotal, record.max_discount)
    logger.info("[COUPON] %s valid, discount %s on %s", normalized, discount, subtotal)
    return CouponValidateResponse(
        valid=True,
        coupon=applied_coupon(record),
        discount_amount=discount,
        final_amount=subtotal - discount,
    )
