from __future__ import annotations

from fastapi import APIRouter, Depends
from services.api.app.db.deps import get_store, require_user_id
from services.api.app.models.address import AddressCreate, AddressOut
from services.api.app.services.store import Store

router = APIRouter()


@router.get("/api/addresses", response_model=list[AddressOut])
def list_addresses(
    user_id: str = Depends(require_user_id), store: Store = Depends(get_store)
) -> list[AddressOut]:
    return store.list_addresses(user_id)


@router.post("/api/addresses", response_model=AddressOut, status_code=201)
def create_address(
    payload: AddressCreate,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> AddressOut:
    return store.create_address(user_id, payload)


@router.post("/api/addresses/{address_id}/default", response_model=AddressOut)
def set_default_address(
    address_id: str,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> AddressOut:
    return store.set_default_address(user_id, address_id)
