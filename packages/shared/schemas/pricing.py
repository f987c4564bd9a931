"""Shared cart pricing schema (v1).

The client cart engine and the API both price carts with these types, so a cart shown
to the shopper and the order persisted at checkout are computed the same way.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class DiscountKindV1(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class PaymentMethodV1(str, Enum):
    COD = "COD"
    UPI = "UPI"
    CARD = "Card"
    ONLINE = "Online"


class CartLineV1(BaseModel):
    product_id: str
    name: str = ""
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class AppliedCouponV1(BaseModel):
    code: str
    kind: DiscountKindV1
    value: Decimal = Field(..., ge=0)
    max_discount: Decimal | None = None
    min_order_amount: Decimal | None = None
    description: str | None = None

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class DeliveryOptionV1(BaseModel):
    id: str
    name: str
    description: str = ""
    estimated_days: str = ""
    price: Decimal = Field(..., ge=0)
    is_active: bool = True
    sort_order: int = 0


class CartTotalsV1(BaseModel):
    item_count: int = 0
    subtotal: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    delivery_charge: Decimal = Decimal("0.00")
    payment_surcharge: Decimal = Decimal("0.00")
    final_amount: Decimal = Decimal("0.00")
