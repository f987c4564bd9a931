from __future__ import annotations

import os

from services.api.app.services.messaging_base import MessagingProvider
from services.api.app.services.messaging_mock import MockMessagingProvider


def get_messaging_provider() -> MessagingProvider:
    """Select a messaging provider based on env vars.

    Defaults to the mock provider so tests and local dev never send real messages unless
    explicitly configured otherwise.
    """

    mode = os.getenv("BOUQUET_MESSAGING_PROVIDER", "mock").strip().lower()

    if mode == "mock":
        return MockMessagingProvider()

    if mode == "twilio":
        from services.api.app.services.messaging_twilio import TwilioMessagingProvider

        return TwilioMessagingProvider.from_env()

    raise ValueError(f"Unknown BOUQUET_MESSAGING_PROVIDER={mode!r}. Expected mock or twilio.")
