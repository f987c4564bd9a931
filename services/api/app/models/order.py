from __future__ import annotations

from datetime import date
from decimal import Decimal

from packages.shared.schemas.order_status import OrderStatusV1
from packages.shared.schemas.pricing import PaymentMethodV1
from pydantic import BaseModel, Field, field_validator, model_validator
from services.api.app.models.address import AddressInput


class CustomerInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(..., pattern=r"^\+?[\d\s\-()]{10,20}$")


class CheckoutItemInput(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    # Advisory: the price the shopper saw. Checked against the catalog, never trusted.
    unit_price: Decimal | None = Field(default=None, ge=0)


class ExpectedTotals(BaseModel):
    subtotal: Decimal | None = None
    discount_amount: Decimal | None = None
    delivery_charge: Decimal | None = None
    payment_surcharge: Decimal | None = None
    total: Decimal | None = None


class CheckoutPayload(BaseModel):
    customer: CustomerInput
    items: list[CheckoutItemInput] = Field(..., min_length=1)

    shipping_address: AddressInput | None = None
    shipping_address_id: str | None = None

    delivery_option_id: str = Field(..., min_length=1)
    payment_method: PaymentMethodV1
    coupon_code: str | None = None

    occasion: str | None = Field(default=None, max_length=120)
    requirements: str | None = Field(default=None, max_length=2000)
    delivery_date: date | None = None

    expected_totals: ExpectedTotals | None = None

    @field_validator("coupon_code")
    @classmethod
    def _normalize_coupon(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

    @model_validator(mode="after")
    def _one_address(self) -> "CheckoutPayload":
        if (self.shipping_address is None) == (self.shipping_address_id is None):
            raise ValueError("Provide exactly one of shipping_address or shipping_address_id")
        return self

    @model_validator(mode="after")
    def _unique_items(self) -> "CheckoutPayload":
        ids = [i.product_id for i in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("Each product may appear only once in items")
        return self


class OrderItemSnapshot(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderPublic(BaseModel):
    id: str
    order_number: str
    status: OrderStatusV1

    items: list[OrderItemSnapshot]
    subtotal: Decimal
    discount_amount: Decimal
    delivery_charge: Decimal
    payment_surcharge: Decimal
    total: Decimal
    coupon_code: str | None = None

    payment_method: PaymentMethodV1
    payment_status: str

    estimated_delivery_date: str | None = None
    created_at: str
    updated_at: str


class OrderDetail(OrderPublic):
    """Full order snapshot for internal consumers (notifications, scheduler)."""

    user_id: str | None = None
    customer_name: str
    email: str
    phone: str
    occasion: str | None = None
    requirements: str | None = None
    delivery_option_id: str
    delivery_address: str
    status_updated_at: str
    points_awarded: bool = False

    def public(self) -> OrderPublic:
        return OrderPublic.model_validate(self.model_dump(include=set(OrderPublic.model_fields)))


class ErrorItem(BaseModel):
    code: str
    message: str
    field: str | None = None


class PlaceOrderResponse(BaseModel):
    success: bool
    order: OrderPublic | None = None
    errors: list[ErrorItem] | None = None
    retryable: bool = False


class CancelOrderResponse(BaseModel):
    success: bool
    order: OrderPublic
