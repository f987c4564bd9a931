"""Client-resident cart pricing engine.

Every mutation goes through `_commit`, which stores the new state and recomputes totals
with the same `recompute_totals` the server uses at checkout. When the subtotal changes
while a coupon is applied, the coupon is re-validated in the background; the answer is
applied only while the same coupon is still applied and the subtotal is still the one it
was checked against.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import replace
from decimal import Decimal
from typing import Any

from packages.cart_client.api import (
    CouponClient,
    CouponRejected,
    CouponServiceUnavailable,
    CouponVerdict,
)
from packages.cart_client.storage import CartState, CartStorage, Selection
from packages.shared.pricing import recompute_totals
from packages.shared.schemas.pricing import (
    AppliedCouponV1,
    CartLineV1,
    CartTotalsV1,
    DeliveryOptionV1,
    PaymentMethodV1,
)

logger = logging.getLogger(__name__)


class CartEngine:
    def __init__(
        self,
        storage: CartStorage,
        coupons: CouponClient,
        *,
        executor: Executor | None = None,
        keep_coupon_on_transport_error: bool = True,
        on_notice: Callable[[str], None] | None = None,
    ) -> None:
        self.storage = storage
        self.coupons = coupons
        self.keep_coupon_on_transport_error = keep_coupon_on_transport_error
        self.on_notice = on_notice

        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="cart")
        self._owns_executor = executor is None
        self._lock = threading.RLock()
        self._state = CartState()
        self._totals = recompute_totals(())
        self._revision = 0

    @property
    def state(self) -> CartState:
        with self._lock:
            return self._state

    @property
    def totals(self) -> CartTotalsV1:
        with self._lock:
            return self._totals

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def load(self) -> CartTotalsV1:
        with self._lock:
            return self._commit(self.storage.load())

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # Items

    def add_item(self, product: CartLineV1, quantity: int = 1) -> CartTotalsV1:
        if quantity <= 0:
            return self.remove_item(product.product_id)
        with self._lock:
            line = product.model_copy(update={"quantity": quantity})
            totals = self._commit(self.storage.add_item(self._state, line))
            self._schedule_revalidation()
            return totals

    def remove_item(self, product_id: str) -> CartTotalsV1:
        return self.set_quantity(product_id, 0)

    def set_quantity(self, product_id: str, quantity: int) -> CartTotalsV1:
        with self._lock:
            if self._state.line(product_id) is None:
                return self._totals
            totals = self._commit(self.storage.set_quantity(self._state, product_id, quantity))
            self._schedule_revalidation()
            return totals

    def clear(self) -> CartTotalsV1:
        with self._lock:
            return self._commit(self.storage.clear(self._state))

    # Coupon

    def apply_coupon(self, code: str) -> AppliedCouponV1:
        """Validate `code` against the current subtotal and apply it.

        Raises `CouponRejected` for an invalid code and `CouponServiceUnavailable` when no
        verdict could be obtained. Either way the cart is left unchanged.
        """

        code = code.strip().upper()
        with self._lock:
            subtotal = self._totals.subtotal

        verdict = self.coupons.validate(code, subtotal)
        if not verdict.valid or verdict.coupon is None:
            raise CouponRejected(code, verdict.error or "Invalid coupon code")

        with self._lock:
            self._commit(self.storage.set_coupon(self._state, verdict.coupon))
            logger.info("[CART] Applied coupon %s", verdict.coupon.code)
            if self._totals.subtotal != subtotal:
                # Items changed while the request was in flight.
                self._schedule_revalidation()
            return verdict.coupon

    def remove_coupon(self) -> CartTotalsV1:
        with self._lock:
            if self._state.coupon is None:
                return self._totals
            return self._commit(self.storage.set_coupon(self._state, None))

    # Checkout selections

    def set_delivery_option(self, option: DeliveryOptionV1 | None) -> CartTotalsV1:
        with self._lock:
            return self._select(delivery_option=option)

    def set_shipping_address(
        self, address: dict[str, Any] | None = None, *, address_id: str | None = None
    ) -> CartTotalsV1:
        with self._lock:
            return self._select(shipping_address=address, shipping_address_id=address_id)

    def set_payment_method(self, method: PaymentMethodV1 | str | None) -> CartTotalsV1:
        with self._lock:
            return self._select(payment_method=PaymentMethodV1(method) if method else None)

    def checkout_payload(
        self,
        customer: dict[str, str],
        *,
        occasion: str | None = None,
        requirements: str | None = None,
        delivery_date: str | None = None,
    ) -> dict[str, Any]:
        """Placement request built from the current state.

        Prices and totals are included as advisory values; the server re-prices.
        """

        with self._lock:
            state, totals = self._state, self._totals

        payload: dict[str, Any] = {
            "customer": customer,
            "items": [
                {
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                }
                for line in state.items
            ],
            "delivery_option_id": state.delivery_option.id if state.delivery_option else None,
            "payment_method": state.payment_method.value if state.payment_method else None,
            "coupon_code": state.coupon.code if state.coupon else None,
            "expected_totals": {
                "subtotal": str(totals.subtotal),
                "discount_amount": str(totals.discount_amount),
                "delivery_charge": str(totals.delivery_charge),
                "payment_surcharge": str(totals.payment_surcharge),
                "total": str(totals.final_amount),
            },
        }
        if state.shipping_address_id:
            payload["shipping_address_id"] = state.shipping_address_id
        else:
            payload["shipping_address"] = state.shipping_address
        if occasion:
            payload["occasion"] = occasion
        if requirements:
            payload["requirements"] = requirements
        if delivery_date:
            payload["delivery_date"] = delivery_date
        return payload

    # Internals

    def _select(self, **changes: Any) -> CartTotalsV1:
        current = Selection(
            delivery_option=self._state.delivery_option,
            shipping_address=self._state.shipping_address,
            shipping_address_id=self._state.shipping_address_id,
            payment_method=self._state.payment_method,
        )
        return self._commit(self.storage.set_selection(self._state, replace(current, **changes)))

    def _commit(self, state: CartState) -> CartTotalsV1:
        self._state = state
        self._totals = recompute_totals(
            state.items,
            state.coupon,
            state.delivery_option.price if state.delivery_option else None,
            state.payment_method,
        )
        self._revision += 1
        for warning in state.warnings:
            self._notice(warning)
        return self._totals

    def _schedule_revalidation(self) -> None:
        coupon = self._state.coupon
        if coupon is None:
            return
        self._executor.submit(self._revalidate, coupon.code, self._totals.subtotal)

    def _revalidate(self, code: str, subtotal: Decimal) -> None:
        try:
            verdict: CouponVerdict | None = self.coupons.validate(code, subtotal)
        except CouponServiceUnavailable as e:
            verdict = None
            logger.warning("[CART] Coupon %s revalidation failed: %s", code, e)
        except Exception as e:
            logger.error("[CART] Coupon %s revalidation crashed: %s", code, e)
            return

        with self._lock:
            current = self._state.coupon
            # Only a subtotal change makes a verdict stale.
            if current is None or current.code != code or self._totals.subtotal != subtotal:
                logger.info("[CART] Ignoring stale revalidation for %s", code)
                return

            if verdict is None:
                if self.keep_coupon_on_transport_error:
                    return
                self._commit(self.storage.set_coupon(self._state, None))
                self._notice(f"Coupon {code} removed: it could not be re-checked")
                return

            if verdict.valid:
                if verdict.coupon is not None and verdict.coupon != current:
                    self._commit(self.storage.set_coupon(self._state, verdict.coupon))
                return

            self._commit(self.storage.set_coupon(self._state, None))
            self._notice(f"Coupon {code} removed: {verdict.error or 'no longer valid'}")

    def _notice(self, message: str) -> None:
        logger.info("[CART] %s", message)
        if self.on_notice is None:
            return
        try:
            self.on_notice(message)
        except Exception as e:
            logger.error("[CART] Notice handler failed: %s", e)
