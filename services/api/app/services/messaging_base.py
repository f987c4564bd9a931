from __future__ import annotations

from typing import Protocol


class MessagingProvider(Protocol):
    """Outbound text and chat-app messaging.

    Both methods return the provider's message id and raise `ProviderError` on failure.
    """

    name: str

    def send_text_message(self, to: str, body: str) -> str: ...

    def send_chat_message(self, to: str, body: str) -> str: ...
