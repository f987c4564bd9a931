from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from packages.shared.clock import utcnow
from services.api.app.db.database import db_session
from services.api.app.db.models import Coupon, DeliveryOption, Product, User


@pytest.fixture()
def db_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "bouquet_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("BOUQUET_DB_AUTO_CREATE", "true")
    monkeypatch.setenv("BOUQUET_SCHEDULER_AUTOSTART", "false")
    monkeypatch.setenv("BOUQUET_MESSAGING_PROVIDER", "mock")
    monkeypatch.delenv("BOUQUET_STATUS_DWELL_MINUTES", raising=False)

    from services.api.app.db.init_db import init_db

    init_db()


@pytest.fixture()
def catalog(db_env: None) -> None:
    now = utcnow()
    db = db_session()
    try:
        db.add_all(
            [
                User(id="u-1", name="Asha", email="asha@example.com", phone="+919876543210"),
                User(id="u-2", name="Ravi", email="ravi@example.com", phone="+919812345678"),
            ]
        )
        for pid, name, price, stock in (
            ("rose-red-12", "Premium Red Roses", "1500.00", 10),
            ("lily-white-6", "White Lilies", "800.00", 10),
            ("orchid-purple", "Purple Orchid Bouquet", "1200.00", 1),
            ("tulip-mixed", "Mixed Tulips", "950.00", 0),
        ):
            db.add(
                Product(
                    id=pid,
                    name=name,
                    category="flowers",
                    price=Decimal(price),
                    in_stock=stock > 0,
                    stock_quantity=stock,
                )
            )

        coupons: list[dict[str, Any]] = [
            dict(code="SAVE10", kind="percentage", value="10", max_discount="150", min_order_amount="1000"),
            dict(code="FLAT500", kind="fixed", value="500"),
            dict(code="INACTIVE", kind="fixed", value="50", is_active=False),
            dict(code="STALE", kind="fixed", value="50", is_active=False, expires_at=now - timedelta(days=1)),
            dict(code="FUTURE", kind="fixed", value="50", starts_at=now + timedelta(days=1)),
            dict(code="EXPIRED", kind="fixed", value="50", expires_at=now - timedelta(days=1)),
            dict(code="USEDUP", kind="fixed", value="50", usage_limit=1, times_used=1),
            dict(code="LASTONE", kind="fixed", value="50", usage_limit=1),
            dict(code="ONCE", kind="fixed", value="50", per_user_limit=1),
        ]
        for c in coupons:
            for key in ("value", "max_discount", "min_order_amount"):
                if key in c:
                    c[key] = Decimal(c[key])
            db.add(Coupon(id=uuid4().hex, **c))

        for oid, days, price, active, order in (
            ("standard", "2-3", "100.00", True, 1),
            ("express", "1", "200.00", True, 2),
            ("same-day", "Same day", "300.00", True, 3),
            ("retired", "5-7", "50.00", False, 0),
        ):
            db.add(
                DeliveryOption(
                    id=oid,
                    name=oid.title(),
                    description="",
                    estimated_days=days,
                    price=Decimal(price),
                    is_active=active,
                    sort_order=order,
                )
            )
        db.commit()
    finally:
        db.close()


@pytest.fixture()
def store(catalog: None):
    from services.api.app.services.store import SqlStore

    return SqlStore()


@pytest.fixture()
def client(catalog: None) -> TestClient:
    from services.api.app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_headers(client: TestClient) -> dict[str, str]:
    token = client.app.state.sessions.issue("u-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_checkout() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "customer": {"name": "Asha", "email": "asha@example.com", "phone": "9876543210"},
            "items": [
                {"product_id": "rose-red-12", "quantity": 1},
                {"product_id": "lily-white-6", "quantity": 1},
            ],
            "shipping_address": {
                "full_name": "Asha",
                "phone": "9876543210",
                "line1": "12 MG Road",
                "city": "Mumbai",
                "state": "Maharashtra",
                "postal_code": "400001",
            },
            "delivery_option_id": "standard",
            "payment_method": "COD",
        }
        payload.update(overrides)
        return payload

    return _make
