"""Where a cart lives between mutations.

Guests keep their cart in a local JSON file and never touch the network until
checkout. Signed-in shoppers keep it on the server: every mutation is sent to the API
and the cart is reloaded from the response.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Protocol

from packages.cart_client.api import ApiClient
from packages.shared.schemas.pricing import (
    AppliedCouponV1,
    CartLineV1,
    DeliveryOptionV1,
    PaymentMethodV1,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartState:
    items: tuple[CartLineV1, ...] = ()
    coupon: AppliedCouponV1 | None = None
    delivery_option: DeliveryOptionV1 | None = None
    shipping_address: dict[str, Any] | None = None
    shipping_address_id: str | None = None
    payment_method: PaymentMethodV1 | None = None
    warnings: tuple[str, ...] = field(default=())

    def line(self, product_id: str) -> CartLineV1 | None:
        for line in self.items:
            if line.product_id == product_id:
                return line
        return None


@dataclass(frozen=True)
class Selection:
    delivery_option: DeliveryOptionV1 | None
    shipping_address: dict[str, Any] | None
    shipping_address_id: str | None
    payment_method: PaymentMethodV1 | None


class CartStorage(Protocol):
    def load(self) -> CartState: ...

    def add_item(self, state: CartState, line: CartLineV1) -> CartState: ...

    def set_quantity(self, state: CartState, product_id: str, quantity: int) -> CartState: ...

    def set_coupon(self, state: CartState, coupon: AppliedCouponV1 | None) -> CartState: ...

    def set_selection(self, state: CartState, selection: Selection) -> CartState: ...

    def clear(self, state: CartState) -> CartState: ...


def _with_quantity(state: CartState, product_id: str, quantity: int) -> CartState:
    if quantity <= 0:
        return replace(state, items=tuple(i for i in state.items if i.product_id != product_id))
    return replace(
        state,
        items=tuple(
            i.model_copy(update={"quantity": quantity}) if i.product_id == product_id else i
            for i in state.items
        ),
    )


class GuestCartStorage:
    """Cart persisted to a local JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> CartState:
        if not self.path.exists():
            return CartState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("[CART] Unreadable guest cart at %s, starting empty: %s", self.path, e)
            return CartState()

        return CartState(
            items=tuple(CartLineV1.model_validate(i) for i in data.get("items", [])),
            coupon=AppliedCouponV1.model_validate(data["coupon"]) if data.get("coupon") else None,
            delivery_option=(
                DeliveryOptionV1.model_validate(data["delivery_option"])
                if data.get("delivery_option")
                else None
            ),
            shipping_address=data.get("shipping_address"),
            shipping_address_id=data.get("shipping_address_id"),
            payment_method=(
                PaymentMethodV1(data["payment_method"]) if data.get("payment_method") else None
            ),
        )

    def _save(self, state: CartState) -> CartState:
        data = {
            "items": [i.model_dump(mode="json") for i in state.items],
            "coupon": state.coupon.model_dump(mode="json") if state.coupon else None,
            "delivery_option": (
                state.delivery_option.model_dump(mode="json") if state.delivery_option else None
            ),
            "shipping_address": state.shipping_address,
            "shipping_address_id": state.shipping_address_id,
            "payment_method": state.payment_method.value if state.payment_method else None,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        return state

    def add_item(self, state: CartState, line: CartLineV1) -> CartState:
        existing = state.line(line.product_id)
        if existing is not None:
            return self._save(
                _with_quantity(state, line.product_id, existing.quantity + line.quantity)
            )
        return self._save(replace(state, items=state.items + (line,)))

    def set_quantity(self, state: CartState, product_id: str, quantity: int) -> CartState:
        return self._save(_with_quantity(state, product_id, quantity))

    def set_coupon(self, state: CartState, coupon: AppliedCouponV1 | None) -> CartState:
        return self._save(replace(state, coupon=coupon))

    def set_selection(self, state: CartState, selection: Selection) -> CartState:
        return self._save(
            replace(
                state,
                delivery_option=selection.delivery_option,
                shipping_address=selection.shipping_address,
                shipping_address_id=selection.shipping_address_id,
                payment_method=selection.payment_method,
            )
        )

    def clear(self, state: CartState) -> CartState:
        return self._save(CartState())


class AccountCartStorage:
    """Cart kept server-side for a signed-in shopper."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def _state(self, data: dict[str, Any], inline_address: dict[str, Any] | None = None) -> CartState:
        return CartState(
            items=tuple(CartLineV1.model_validate(i) for i in data.get("items", [])),
            coupon=AppliedCouponV1.model_validate(data["coupon"]) if data.get("coupon") else None,
            delivery_option=(
                DeliveryOptionV1.model_validate(data["delivery_option"])
                if data.get("delivery_option")
                else None
            ),
            shipping_address=inline_address,
            shipping_address_id=data.get("shipping_address_id"),
            payment_method=(
                PaymentMethodV1(data["payment_method"]) if data.get("payment_method") else None
            ),
            warnings=tuple(data.get("warnings", [])),
        )

    def load(self) -> CartState:
        return self._state(self._api.get("/api/cart"))

    def add_item(self, state: CartState, line: CartLineV1) -> CartState:
        data = self._api.post(
            "/api/cart/items", {"product_id": line.product_id, "quantity": line.quantity}
        )
        return self._state(data, state.shipping_address)

    def set_quantity(self, state: CartState, product_id: str, quantity: int) -> CartState:
        if quantity <= 0:
            data = self._api.delete(f"/api/cart/items/{product_id}")
        else:
            data = self._api.put(f"/api/cart/items/{product_id}", {"quantity": quantity})
        return self._state(data, state.shipping_address)

    def set_coupon(self, state: CartState, coupon: AppliedCouponV1 | None) -> CartState:
        data = self._api.put(
            "/api/cart/selection", {"coupon_code": coupon.code if coupon is not None else None}
        )
        return self._state(data, state.shipping_address)

    def set_selection(self, state: CartState, selection: Selection) -> CartState:
        data = self._api.put(
            "/api/cart/selection",
            {
                "delivery_option_id": (
                    selection.delivery_option.id if selection.delivery_option else None
                ),
                "shipping_address_id": selection.shipping_address_id,
                "payment_method": (
                    selection.payment_method.value if selection.payment_method else None
                ),
            },
        )
        return self._state(data, selection.shipping_address)

    def clear(self, state: CartState) -> CartState:
        return self._state(self._api.delete("/api/cart"))
