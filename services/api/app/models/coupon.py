from __future__ import annotations

from decimal import Decimal

from packages.shared.schemas.pricing import AppliedCouponV1
from pydantic import BaseModel, Field


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    cart_subtotal: Decimal = Field(..., ge=0)
    owner_id: str | None = None


class CouponValidateResponse(BaseModel):
    valid: bool
    coupon: AppliedCouponV1 | None = None
    discount_amount: Decimal | None = None
    final_amount: Decimal | None = None
    error: str | None = None
