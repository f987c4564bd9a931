from __future__ import annotations

import base64
import json
import os
import urllib.error
import urllib.parse
import urllib.request

from services.api.app.errors import ProviderError

DEFAULT_WHATSAPP_FROM = "+14155238886"
API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioMessagingProvider:
    """Twilio Messages API over plain HTTPS.

    Chat messages go to the WhatsApp channel by prefixing both numbers with `whatsapp:`.
    """

    name = "twilio"

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        sms_from: str,
        whatsapp_from: str = DEFAULT_WHATSAPP_FROM,
        status_callback_url: str | None = None,
        timeout_seconds: float = 15,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._sms_from = sms_from if not sms_from or sms_from.startswith("+") else f"+{sms_from}"
        self._whatsapp_from = (
            whatsapp_from if whatsapp_from.startswith("whatsapp:") else f"whatsapp:{whatsapp_from}"
        )
        self._status_callback_url = status_callback_url
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_env(cls) -> "TwilioMessagingProvider":
        account_sid = os.getenv("TWILIO_ACCOUNT_SID", "").strip()
        auth_token = os.getenv("TWILIO_AUTH_TOKEN", "").strip()
        if not account_sid or not auth_token:
            raise ValueError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required for twilio")

        base_url = os.getenv("BOUQUET_BASE_URL", "http://localhost:8000").rstrip("/")
        return cls(
            account_sid=account_sid,
            auth_token=auth_token,
            sms_from=os.getenv("TWILIO_SMS_FROM") or os.getenv("TWILIO_PHONE_NUMBER") or "",
            whatsapp_from=os.getenv("TWILIO_WHATSAPP_FROM") or DEFAULT_WHATSAPP_FROM,
            status_callback_url=f"{base_url}/api/notifications/status",
        )

    def send_text_message(self, to: str, body: str) -> str:
        if not self._sms_from:
            raise ProviderError("SMS from number not configured")
        return self._create_message(to=to, from_=self._sms_from, body=body)

    def send_chat_message(self, to: str, body: str) -> str:
        return self._create_message(to=f"whatsapp:{to}", from_=self._whatsapp_from, body=body)

    def _create_message(self, *, to: str, from_: str, body: str) -> str:
        url = f"{API_BASE}/Accounts/{self._account_sid}/Messages.json"
        form = {"To": to, "From": from_, "Body": body}
        if self._status_callback_url:
            form["StatusCallback"] = self._status_callback_url

        credentials = base64.b64encode(
            f"{self._account_sid}:{self._auth_token}".encode("utf-8")
        ).decode("ascii")
        req = urllib.request.Request(url, method="POST")
        req.add_header("Authorization", f"Basic {credentials}")
        req.add_header("Content-Type", "application/x-www-form-urlencoded")

        try:
            with urllib.request.urlopen(
                req, data=urllib.parse.urlencode(form).encode("utf-8"), timeout=self._timeout_seconds
            ) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            raw = e.read().decode("utf-8", errors="replace")
            raise ProviderError(f"Twilio HTTP {e.code}: {raw}") from e
        except (urllib.error.URLError, TimeoutError) as e:
            raise ProviderError(f"Twilio unreachable: {e}") from e

        sid = payload.get("sid") if isinstance(payload, dict) else None
        if not sid:
            raise ProviderError(f"Unexpected Twilio response shape: {payload!r}")
        return sid
