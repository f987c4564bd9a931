from __future__ import annotations

from fastapi import APIRouter, Depends
from packages.shared.schemas.pricing import DeliveryOptionV1
from services.api.app.db.deps import get_store
from services.api.app.services.store import Store

router = APIRouter()


@router.get("/api/delivery-options", response_model=list[DeliveryOptionV1])
def list_delivery_options(store: Store = Depends(get_store)) -> list[DeliveryOptionV1]:
    return store.list_delivery_options(active_only=True)
