from __future__ import annotations

import threading
from dataclasses import dataclass
from uuid import uuid4

from services.api.app.errors import ProviderError


@dataclass(frozen=True, slots=True)
class SentMessage:
    channel: str
    to: str
    body: str
    message_id: str


class MockMessagingProvider:
    """In-memory provider for local dev and tests.

    Channels named in `failing_channels` ("sms", "whatsapp") raise `ProviderError`.
    """

    name = "mock"

    def __init__(self, failing_channels: set[str] | None = None) -> None:
        self.failing_channels = set(failing_channels or ())
        self.sent: list[SentMessage] = []
        self._lock = threading.Lock()

    def _send(self, channel: str, to: str, body: str) -> str:
        if channel in self.failing_channels:
            raise ProviderError(f"{channel} channel unavailable")

        message_id = f"MOCK{uuid4().hex[:16].upper()}"
        with self._lock:
            self.sent.append(SentMessage(channel=channel, to=to, body=body, message_id=message_id))
        return message_id

    def send_text_message(self, to: str, body: str) -> str:
        return self._send("sms", to, body)

    def send_chat_message(self, to: str, body: str) -> str:
        return self._send("whatsapp", to, body)

    def messages_for(self, channel: str) -> list[SentMessage]:
        with self._lock:
            return [m for m in self.sent if m.channel == channel]
