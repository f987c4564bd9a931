"""Shared notification result schema (v1).

Results are logged and returned to callers for inspection; they are never persisted.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class NotificationChannelV1(str, Enum):
    SMS = "sms"
    WHATSAPP = "whatsapp"


class NotificationResultV1(BaseModel):
    channel: NotificationChannelV1
    success: bool
    message_id: str | None = None
    error: str | None = None


class DispatchResultV1(BaseModel):
    sms: NotificationResultV1
    whatsapp: NotificationResultV1

    @property
    def any_success(self) -> bool:
        return self.sms.success or self.whatsapp.success
