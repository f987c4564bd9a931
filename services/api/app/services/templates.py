"""Message bodies for order notifications.

Pure functions; SMS bodies stay short, WhatsApp bodies may use light markdown.
"""

from __future__ import annotations

from decimal import Decimal

from packages.shared.pricing import money
from packages.shared.schemas.order_status import OrderStatusV1
from services.api.app.models.order import OrderDetail

SHOP_NAME = "Bouquet Bar"

STATUS_MESSAGES: dict[OrderStatusV1, str] = {
    OrderStatusV1.PENDING: "has been received",
    OrderStatusV1.CONFIRMED: "has been confirmed",
    OrderStatusV1.PROCESSING: "is being arranged by our florists",
    OrderStatusV1.SHIPPED: "is out for delivery",
    OrderStatusV1.DELIVERED: "has been delivered. We hope you love it",
    OrderStatusV1.CANCELLED: "has been cancelled",
}


def format_inr(amount: Decimal | int | str) -> str:
    """Rupee amount with Indian digit grouping, e.g. ₹1,23,456 or ₹2,250.50."""

    value = money(amount)
    sign = "-" if value < 0 else ""
    whole, _, fraction = f"{abs(value):.2f}".partition(".")

    head, tail = whole[:-3], whole[-3:]
    groups: list[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    grouped = ",".join(groups + [tail])

    if fraction == "00":
        return f"{sign}₹{grouped}"
    return f"{sign}₹{grouped}.{fraction}"


def _delivery_line(order: OrderDetail) -> str:
    if not order.estimated_delivery_date:
        return ""
    return f"Expected delivery: {order.estimated_delivery_date[:10]}"


def sms_order_confirmation(order: OrderDetail) -> str:
    lines = [
        f"{SHOP_NAME}: Hi {order.customer_name}, your order {order.order_number} "
        f"for {format_inr(order.total)} is placed.",
        f"Payment: {order.payment_method.value}.",
    ]
    delivery = _delivery_line(order)
    if delivery:
        lines.append(delivery + ".")
    return " ".join(lines)


def whatsapp_order_confirmation(order: OrderDetail) -> str:
    items = "\n".join(
        f"• {i.name} x{i.quantity}: {format_inr(i.line_total)}" for i in order.items
    )
    parts = [
        f"🌸 *{SHOP_NAME}*",
        f"Hi {order.customer_name}, thank you for your order!",
        f"*Order:* {order.order_number}",
        items,
        f"*Total:* {format_inr(order.total)}",
        f"*Payment:* {order.payment_method.value} ({order.payment_status})",
        f"*Deliver to:* {order.delivery_address}",
    ]
    delivery = _delivery_line(order)
    if delivery:
        parts.append(delivery)
    return "\n".join(p for p in parts if p)


def sms_status_update(order: OrderDetail, status: OrderStatusV1) -> str:
    text = (
        f"{SHOP_NAME}: Hi {order.customer_name or 'Valued Customer'}, "
        f"your order {order.order_number} {STATUS_MESSAGES[status]}."
    )
    if status is OrderStatusV1.SHIPPED and order.estimated_delivery_date:
        text += f" {_delivery_line(order)}."
    return text


def whatsapp_status_update(order: OrderDetail, status: OrderStatusV1) -> str:
    parts = [
        f"🌸 *{SHOP_NAME}*",
        f"Hi {order.customer_name or 'Valued Customer'},",
        f"Your order *{order.order_number}* {STATUS_MESSAGES[status]}.",
    ]
    if status not in (OrderStatusV1.DELIVERED, OrderStatusV1.CANCELLED):
        delivery = _delivery_line(order)
        if delivery:
            parts.append(delivery)
    return "\n".join(parts)
