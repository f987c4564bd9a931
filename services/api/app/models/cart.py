from __future__ import annotations

from packages.shared.schemas.pricing import (
    AppliedCouponV1,
    CartLineV1,
    CartTotalsV1,
    DeliveryOptionV1,
    PaymentMethodV1,
)
from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    # 0 or less removes the line.
    quantity: int


class CartSelectionUpdate(BaseModel):
    """Partial update; only fields present in the request body are changed."""

    coupon_code: str | None = None
    delivery_option_id: str | None = None
    shipping_address_id: str | None = None
    payment_method: PaymentMethodV1 | None = None


class CartOut(BaseModel):
    items: list[CartLineV1] = Field(default_factory=list)
    coupon: AppliedCouponV1 | None = None
    delivery_option: DeliveryOptionV1 | None = None
    shipping_address_id: str | None = None
    payment_method: PaymentMethodV1 | None = None
    totals: CartTotalsV1 = Field(default_factory=CartTotalsV1)
    warnings: list[str] = Field(default_factory=list)
