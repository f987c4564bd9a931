from __future__ import annotations

from fastapi import APIRouter, Depends
from services.api.app.db.deps import get_current_user_id, get_store
from services.api.app.models.coupon import CouponValidateRequest, CouponValidateResponse
from services.api.app.services.coupon_validator import validate_coupon
from services.api.app.services.store import Store

router = APIRouter()


@router.post("/api/coupons/validate", response_model=CouponValidateResponse)
def validate_coupon_endpoint(
    payload: CouponValidateRequest,
    store: Store = Depends(get_store),
    user_id: str | None = Depends(get_current_user_id),
) -> CouponValidateResponse:
    # Business verdicts are always 200; only malformed requests are rejected.
    return validate_coupon(
        store, payload.code, payload.cart_subtotal, owner_id=payload.owner_id or user_id
    )
