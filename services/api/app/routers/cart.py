from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from packages.shared.pricing import recompute_totals
from packages.shared.schemas.pricing import PaymentMethodV1
from services.api.app.db.deps import get_store, require_user_id
from services.api.app.errors import CouponInvalidError, NotFoundError
from services.api.app.models.cart import CartItemAdd, CartItemUpdate, CartOut, CartSelectionUpdate
from services.api.app.services.coupon_validator import validate_coupon
from services.api.app.services.order_placement import DeliveryOptionInvalidError
from services.api.app.services.store import Store

logger = logging.getLogger(__name__)

router = APIRouter()


def _cart_view(store: Store, user_id: str) -> CartOut:
    """Current cart with totals. A coupon that no longer qualifies is dropped here."""

    lines = store.get_cart_lines(user_id)
    selection = store.get_cart_selection(user_id)
    warnings: list[str] = []

    subtotal = recompute_totals(lines).subtotal
    coupon = None
    if selection.coupon_code:
        verdict = validate_coupon(store, selection.coupon_code, subtotal, owner_id=user_id)
        if verdict.valid:
            coupon = verdict.coupon
        else:
            store.update_cart_selection(user_id, {"coupon_code": None})
            warnings.append(f"Coupon {selection.coupon_code} removed: {verdict.error}")
            logger.info("[CART] Dropped coupon %s for user %s", selection.coupon_code, user_id)

    option = None
    if selection.delivery_option_id:
        option = store.get_delivery_option(selection.delivery_option_id)
        if option is None or not option.is_active:
            option = None
            warnings.append("Selected delivery option is no longer available")

    payment_method = PaymentMethodV1(selection.payment_method) if selection.payment_method else None
    totals = recompute_totals(
        lines, coupon, option.price if option is not None else None, payment_method
    )
    return CartOut(
        items=lines,
        coupon=coupon,
        delivery_option=option,
        shipping_address_id=selection.shipping_address_id,
        payment_method=payment_method,
        totals=totals,
        warnings=warnings,
    )


@router.get("/api/cart", response_model=CartOut)
def get_cart(user_id: str = Depends(require_user_id), store: Store = Depends(get_store)) -> CartOut:
    return _cart_view(store, user_id)


@router.post("/api/cart/items", response_model=CartOut)
def add_cart_item(
    payload: CartItemAdd,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> CartOut:
    store.add_cart_item(user_id, payload.product_id, payload.quantity)
    return _cart_view(store, user_id)


@router.put("/api/cart/items/{product_id}", response_model=CartOut)
def update_cart_item(
    product_id: str,
    payload: CartItemUpdate,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> CartOut:
    store.set_cart_quantity(user_id, product_id, payload.quantity)
    return _cart_view(store, user_id)


@router.delete("/api/cart/items/{product_id}", response_model=CartOut)
def remove_cart_item(
    product_id: str,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> CartOut:
    store.set_cart_quantity(user_id, product_id, 0)
    return _cart_view(store, user_id)


@router.delete("/api/cart", response_model=CartOut)
def clear_cart(user_id: str = Depends(require_user_id), store: Store = Depends(get_store)) -> CartOut:
    store.clear_cart(user_id)
    return _cart_view(store, user_id)


@router.put("/api/cart/selection", response_model=CartOut)
def update_cart_selection(
    payload: CartSelectionUpdate,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> CartOut:
    changes = payload.model_dump(include=payload.model_fields_set)

    code = changes.get("coupon_code")
    if code:
        code = code.strip().upper()
        subtotal = recompute_totals(store.get_cart_lines(user_id)).subtotal
        verdict = validate_coupon(store, code, subtotal, owner_id=user_id)
        if not verdict.valid:
            raise CouponInvalidError(verdict.error or "invalid coupon")
        changes["coupon_code"] = code
    elif "coupon_code" in changes:
        changes["coupon_code"] = None

    option_id = changes.get("delivery_option_id")
    if option_id:
        option = store.get_delivery_option(option_id)
        if option is None or not option.is_active:
            raise DeliveryOptionInvalidError("Selected delivery option is not available")

    address_id = changes.get("shipping_address_id")
    if address_id:
        address = store.get_address(address_id)
        if address is None or address.owner_id != user_id:
            raise NotFoundError("Address not found")

    if changes.get("payment_method") is not None:
        changes["payment_method"] = PaymentMethodV1(changes["payment_method"]).value

    store.update_cart_selection(user_id, changes)
    return _cart_view(store, user_id)
