from __future__ import annotations

import argparse
import os
from datetime import timedelta
from decimal import Decimal

from packages.shared.clock import utcnow
from packages.shared.schemas.order_status import OrderStatusV1
from services.api.app.logging_setup import configure_logging
from services.api.app.models.order import OrderDetail, OrderItemSnapshot
from services.api.app.services.messaging_factory import get_messaging_provider
from services.api.app.services.notifications import NotificationDispatcher


def _sample_order(phone: str) -> OrderDetail:
    now = utcnow()
    return OrderDetail(
        id="test-order",
        order_number=f"ORD-{now:%Y%m}-0000",
        status=OrderStatusV1.CONFIRMED,
        items=[
            OrderItemSnapshot(
                product_id="rose-red-12",
                name="Premium Red Roses",
                unit_price=Decimal("1500.00"),
                quantity=1,
                line_total=Decimal("1500.00"),
            ),
            OrderItemSnapshot(
                product_id="lily-white-6",
                name="White Lilies",
                unit_price=Decimal("800.00"),
                quantity=1,
                line_total=Decimal("800.00"),
            ),
        ],
        subtotal=Decimal("2300.00"),
        discount_amount=Decimal("0.00"),
        delivery_charge=Decimal("100.00"),
        payment_surcharge=Decimal("0.00"),
        total=Decimal("2400.00"),
        payment_method="COD",
        payment_status="pending",
        estimated_delivery_date=(now + timedelta(days=2)).isoformat(),
        created_at=now.isoformat(),
        updated_at=now.isoformat(),
        customer_name="Test Customer",
        email="test@example.com",
        phone=phone,
        delivery_option_id="standard",
        delivery_address="123 Test Street, Mumbai, Maharashtra 400001",
        status_updated_at=now.isoformat(),
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Send a sample order notification")
    parser.add_argument("--phone", required=True)
    parser.add_argument(
        "--status",
        choices=[s.value for s in OrderStatusV1],
        default=None,
        help="Send a status update instead of an order confirmation",
    )
    args = parser.parse_args()

    configure_logging()
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_SMS_FROM", "TWILIO_WHATSAPP_FROM"):
        print(f"{name}: {'set' if os.getenv(name) else 'not set'}")

    dispatcher = NotificationDispatcher(get_messaging_provider())
    try:
        order = _sample_order(args.phone)
        if args.status:
            result = dispatcher.send_status_update(order, OrderStatusV1(args.status))
        else:
            result = dispatcher.send_order_confirmation(order)
    finally:
        dispatcher.close()

    for r in (result.sms, result.whatsapp):
        outcome = f"ok ({r.message_id})" if r.success else f"failed: {r.error}"
        print(f"{r.channel.value}: {outcome}")
    return 0 if result.any_success else 1


if __name__ == "__main__":
    raise SystemExit(main())
