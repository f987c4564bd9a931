from __future__ import annotations

import argparse
from decimal import Decimal
from uuid import uuid4

from services.api.app.db.database import db_session
from services.api.app.db.init_db import init_db
from services.api.app.db.models import Coupon, DeliveryOption, Product, User

PRODUCTS = (
    ("rose-red-12", "Premium Red Roses (12 stems)", "flowers", "1500.00", 40),
    ("lily-white-6", "White Lilies (6 stems)", "flowers", "800.00", 25),
    ("orchid-purple", "Purple Orchid Bouquet", "flowers", "1200.00", 15),
    ("tulip-mixed", "Mixed Tulips", "flowers", "950.00", 30),
    ("course-basics", "Floral Design Basics (School)", "school", "4500.00", 20),
)

COUPONS = (
    # code, kind, value, max_discount, min_order_amount, description
    ("SAVE10", "percentage", "10", "150.00", "1000.00", "10% off orders over ₹1,000, up to ₹150"),
    ("FLAT500", "fixed", "500.00", None, None, "₹500 off"),
)

DELIVERY_OPTIONS = (
    ("standard", "Standard Delivery", "Delivered within 2-3 days", "2-3", "100.00", 1),
    ("express", "Express Delivery", "Next-day delivery", "1", "200.00", 2),
    ("same-day", "Same Day Delivery", "Order before noon", "Same day", "300.00", 3),
)


def _money(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed Bouquet Bar catalog, coupons and a demo user")
    parser.add_argument("--user-id", default="u-1")
    parser.add_argument("--user-name", default="Demo Customer")
    parser.add_argument("--user-email", default="demo@example.com")
    parser.add_argument("--user-phone", default="+919876543210")
    args = parser.parse_args()

    init_db()

    db = db_session()
    try:
        if db.get(User, args.user_id) is None:
            db.add(
                User(
                    id=args.user_id,
                    name=args.user_name,
                    email=args.user_email,
                    phone=args.user_phone,
                )
            )

        for pid, name, category, price, stock in PRODUCTS:
            if db.get(Product, pid) is None:
                db.add(
                    Product(
                        id=pid,
                        name=name,
                        category=category,
                        price=Decimal(price),
                        in_stock=stock > 0,
                        stock_quantity=stock,
                    )
                )

        existing_codes = {c for (c,) in db.query(Coupon.code).all()}
        for code, kind, value, max_discount, min_order, description in COUPONS:
            if code in existing_codes:
                continue
            db.add(
                Coupon(
                    id=uuid4().hex,
                    code=code,
                    kind=kind,
                    value=Decimal(value),
                    max_discount=_money(max_discount),
                    min_order_amount=_money(min_order),
                    description=description,
                )
            )

        for oid, name, description, days, price, sort_order in DELIVERY_OPTIONS:
            if db.get(DeliveryOption, oid) is None:
                db.add(
                    DeliveryOption(
                        id=oid,
                        name=name,
                        description=description,
                        estimated_days=days,
                        price=Decimal(price),
                        sort_order=sort_order,
                    )
                )

        db.commit()
        print(f"Seeded user={args.user_id}, {len(PRODUCTS)} products, {len(COUPONS)} coupons")
        print(f"For local sign-in set BOUQUET_DEV_SESSIONS=dev-token:{args.user_id}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
