from __future__ import annotations

import json
import logging
import urllib.parse

from fastapi import APIRouter, Request
from services.api.app.models.webhook import MessageStatusEvent, WebhookAck
from services.api.app.services.phone import mask_phone

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_body(raw: bytes, content_type: str) -> dict:
    text = raw.decode("utf-8", errors="replace")
    if not text.strip():
        return {}
    if "json" in content_type:
        data = json.loads(text)
        return data if isinstance(data, dict) else {}
    return {k: v[-1] for k, v in urllib.parse.parse_qs(text).items()}


def _recipient(event: MessageStatusEvent) -> str:
    return mask_phone(event.to.removeprefix("whatsapp:") if event.to else None)


@router.post("/api/notifications/status", response_model=WebhookAck)
async def message_status_webhook(request: Request) -> WebhookAck:
    # Always acknowledge so the provider does not retry; bad payloads are only logged.
    try:
        data = _parse_body(await request.body(), request.headers.get("content-type", ""))
        event = MessageStatusEvent.model_validate(data)
    except Exception as e:
        logger.warning("[WEBHOOK] Unreadable status callback: %s", e)
        return WebhookAck()

    if event.error_code is not None:
        logger.warning(
            "[WEBHOOK] Message %s to %s is %s (error %s: %s)",
            event.message_id,
            _recipient(event),
            event.status,
            event.error_code,
            event.error_message,
        )
    else:
        logger.info(
            "[WEBHOOK] Message %s to %s is %s", event.message_id, _recipient(event), event.status
        )
    return WebhookAck()
