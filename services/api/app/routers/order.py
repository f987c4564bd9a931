from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from packages.shared.schemas.order_status import OrderTrackingV1
from services.api.app.db.deps import (
    get_current_user_id,
    get_dispatcher,
    get_store,
    get_task_runner,
    require_user_id,
)
from services.api.app.errors import InternalError, PipelineError
from services.api.app.models.order import CancelOrderResponse, OrderPublic, PlaceOrderResponse
from services.api.app.services.background import TaskRunner
from services.api.app.services.notifications import NotificationDispatcher
from services.api.app.services.order_placement import place_order
from services.api.app.services.order_status import cancel_order, get_tracking, get_visible_order
from services.api.app.services.store import Store

logger = logging.getLogger(__name__)

router = APIRouter()


def _pipeline_error_response(e: Exception) -> JSONResponse:
    if not isinstance(e, PipelineError):
        logger.exception("[CHECKOUT] Unexpected error placing order")
        e = InternalError()
    return JSONResponse(status_code=e.status_code, content=e.to_dict())


@router.post("/api/orders", response_model=PlaceOrderResponse, status_code=201)
def create_order(
    payload: Any = Body(default=None),
    user_id: str | None = Depends(get_current_user_id),
    store: Store = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    tasks: TaskRunner = Depends(get_task_runner),
):
    if not isinstance(payload, dict):
        payload = {}

    try:
        order = place_order(
            store,
            payload,
            user_id,
            on_placed=lambda placed: tasks.submit(dispatcher.send_order_confirmation, placed),
        )
    except Exception as e:
        return _pipeline_error_response(e)

    return PlaceOrderResponse(success=True, order=order)


@router.get("/api/orders", response_model=list[OrderPublic])
def list_my_orders(
    user_id: str = Depends(require_user_id), store: Store = Depends(get_store)
) -> list[OrderPublic]:
    return [o.public() for o in store.list_user_orders(user_id)]


@router.get("/api/orders/{order_id}", response_model=OrderPublic)
def get_order(
    order_id: str,
    user_id: str | None = Depends(get_current_user_id),
    store: Store = Depends(get_store),
) -> OrderPublic:
    return get_visible_order(store, order_id, user_id).public()


@router.get("/api/orders/{order_id}/tracking", response_model=OrderTrackingV1)
def get_order_tracking(
    order_id: str,
    user_id: str | None = Depends(get_current_user_id),
    store: Store = Depends(get_store),
) -> OrderTrackingV1:
    return get_tracking(store, order_id, user_id)


@router.post("/api/orders/{order_id}/cancel", response_model=CancelOrderResponse)
def cancel_my_order(
    order_id: str,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> CancelOrderResponse:
    order = cancel_order(store, order_id, user_id)
    return CancelOrderResponse(success=True, order=order.public())
