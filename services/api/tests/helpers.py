from __future__ import annotations

import time
from collections.abc import Callable

from services.api.app.db.database import db_session
from services.api.app.db.models import Coupon, Order, Product
from sqlalchemy import func, select


def count_orders() -> int:
    db = db_session()
    try:
        return int(db.scalar(select(func.count(Order.id))) or 0)
    finally:
        db.close()


def coupon_times_used(code: str) -> int:
    db = db_session()
    try:
        return int(db.scalar(select(Coupon.times_used).where(Coupon.code == code)) or 0)
    finally:
        db.close()


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def stock_of(product_id: str) -> int:
    db = db_session()
    try:
        return int(db.scalar(select(Product.stock_quantity).where(Product.id == product_id)) or 0)
    finally:
        db.close()
