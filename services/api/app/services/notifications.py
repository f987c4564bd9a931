from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from packages.shared.schemas.notification import (
    DispatchResultV1,
    NotificationChannelV1,
    NotificationResultV1,
)
from packages.shared.schemas.order_status import OrderStatusV1
from services.api.app.models.order import OrderDetail
from services.api.app.services import templates
from services.api.app.services.messaging_base import MessagingProvider
from services.api.app.services.phone import mask_phone, order_phone

logger = logging.getLogger(__name__)

NO_PHONE_ERROR = "No valid phone number found in order"

_LOG_TAGS = {
    NotificationChannelV1.SMS: "[SMS]",
    NotificationChannelV1.WHATSAPP: "[WHATSAPP]",
}


def _failed(error: str) -> DispatchResultV1:
    return DispatchResultV1(
        sms=NotificationResultV1(channel=NotificationChannelV1.SMS, success=False, error=error),
        whatsapp=NotificationResultV1(
            channel=NotificationChannelV1.WHATSAPP, success=False, error=error
        ),
    )


class NotificationDispatcher:
    """Sends order notifications over SMS and WhatsApp.

    The two channels run concurrently and independently: a failure on one never
    prevents or changes the result of the other. Nothing here raises to the caller.
    """

    def __init__(self, provider: MessagingProvider, *, max_workers: int = 2) -> None:
        self.provider = provider
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def send_order_confirmation(self, order: OrderDetail) -> DispatchResultV1:
        return self._dispatch(
            order,
            kind="order confirmation",
            sms_body=lambda: templates.sms_order_confirmation(order),
            whatsapp_body=lambda: templates.whatsapp_order_confirmation(order),
        )

    def send_status_update(self, order: OrderDetail, status: OrderStatusV1) -> DispatchResultV1:
        return self._dispatch(
            order,
            kind=f"status update ({status.value})",
            sms_body=lambda: templates.sms_status_update(order, status),
            whatsapp_body=lambda: templates.whatsapp_status_update(order, status),
        )

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def _dispatch(
        self,
        order: OrderDetail,
        *,
        kind: str,
        sms_body: Callable[[], str],
        whatsapp_body: Callable[[], str],
    ) -> DispatchResultV1:
        phone = order_phone(order.phone, order.delivery_address)
        if phone is None:
            logger.error("[NOTIFICATION] No valid phone number for order %s", order.order_number)
            return _failed(NO_PHONE_ERROR)

        logger.info(
            "[NOTIFICATION] Sending %s for %s to %s", kind, order.order_number, mask_phone(phone)
        )
        try:
            sms_text, whatsapp_text = sms_body(), whatsapp_body()
            sms_future = self._pool.submit(
                self._send,
                NotificationChannelV1.SMS,
                self.provider.send_text_message,
                phone,
                sms_text,
                order.order_number,
            )
            whatsapp_future = self._pool.submit(
                self._send,
                NotificationChannelV1.WHATSAPP,
                self.provider.send_chat_message,
                phone,
                whatsapp_text,
                order.order_number,
            )
        except Exception as e:
            # Template rendering or a pool that is already shut down.
            logger.error(
                "[NOTIFICATION] Could not send %s for %s: %s", kind, order.order_number, e
            )
            return _failed(str(e) or type(e).__name__)

        result = DispatchResultV1(sms=sms_future.result(), whatsapp=whatsapp_future.result())

        for r in (result.sms, result.whatsapp):
            if r.success:
                logger.info(
                    "[NOTIFICATION] %s sent for order %s, id %s",
                    r.channel.value,
                    order.order_number,
                    r.message_id,
                )
            else:
                logger.error(
                    "[NOTIFICATION] %s failed for order %s: %s",
                    r.channel.value,
                    order.order_number,
                    r.error,
                )
        return result

    @staticmethod
    def _send(
        channel: NotificationChannelV1,
        send: Callable[[str, str], str],
        phone: str,
        body: str,
        order_number: str,
    ) -> NotificationResultV1:
        tag = _LOG_TAGS[channel]
        try:
            message_id = send(phone, body)
        except Exception as e:
            logger.error("%s Failed to send for order %s: %s", tag, order_number, e)
            return NotificationResultV1(channel=channel, success=False, error=str(e) or type(e).__name__)

        logger.info("%s Message sent to %s for order %s", tag, mask_phone(phone), order_number)
        return NotificationResultV1(channel=channel, success=True, message_id=message_id)
