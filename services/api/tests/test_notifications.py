from __future__ import annotations

import io
import json
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime
from decimal import Decimal

import pytest
from packages.shared.schemas.order_status import OrderStatusV1
from services.api.app.errors import ProviderError
from services.api.app.models.order import OrderDetail, OrderItemSnapshot
from services.api.app.services import templates
from services.api.app.services.messaging_factory import get_messaging_provider
from services.api.app.services.messaging_mock import MockMessagingProvider
from services.api.app.services.messaging_twilio import TwilioMessagingProvider
from services.api.app.services.notifications import NO_PHONE_ERROR, NotificationDispatcher
from services.api.app.services.phone import mask_phone, normalize_phone
from services.api.app.services.templates import format_inr, sms_status_update


def _order(phone: str = "9876543210", address: str = "12 MG Road, Mumbai 400001") -> OrderDetail:
    now = datetime(2026, 5, 4, 10, 0).isoformat()
    return OrderDetail(
        id="o-1",
        order_number="ORD-202605-0007",
        status=OrderStatusV1.PENDING,
        items=[
            OrderItemSnapshot(
                product_id="rose-red-12",
                name="Premium Red Roses",
                unit_price=Decimal("1500"),
                quantity=1,
                line_total=Decimal("1500"),
            )
        ],
        subtotal=Decimal("1500"),
        discount_amount=Decimal("0"),
        delivery_charge=Decimal("100"),
        payment_surcharge=Decimal("0"),
        total=Decimal("1600"),
        payment_method="COD",
        payment_status="pending",
        estimated_delivery_date="2026-05-06T00:00:00",
        created_at=now,
        updated_at=now,
        customer_name="Asha",
        email="asha@example.com",
        phone=phone,
        delivery_option_id="standard",
        delivery_address=address,
        status_updated_at=now,
    )


@pytest.fixture()
def dispatcher_for():
    created: list[NotificationDispatcher] = []

    def _make(provider) -> NotificationDispatcher:
        d = NotificationDispatcher(provider)
        created.append(d)
        return d

    yield _make
    for d in created:
        d.close()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("9876543210", "+919876543210"),
        ("98765 43210", "+919876543210"),
        ("919876543210", "+919876543210"),
        ("+91 98765-43210", "+919876543210"),
        ("+1 (415) 555-1234", "+14155551234"),
        ("12345", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_phone(raw: str | None, expected: str | None) -> None:
    assert normalize_phone(raw) == expected


def test_default_country_code_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOUQUET_DEFAULT_COUNTRY_CODE", "+44")
    assert normalize_phone("7911123456") == "+447911123456"


@pytest.mark.parametrize(
    ("phone", "masked"),
    [
        ("+919876543210", "+91******3210"),
        ("+14155551234", "+14******1234"),
        ("12345", "***"),
        (None, "***"),
    ],
)
def test_mask_phone(phone: str | None, masked: str) -> None:
    assert mask_phone(phone) == masked


@pytest.mark.parametrize(
    ("amount", "text"),
    [
        ("100", "₹100"),
        ("2250.50", "₹2,250.50"),
        ("123456", "₹1,23,456"),
        ("1234567.8", "₹12,34,567.80"),
        ("0", "₹0"),
    ],
)
def test_format_inr(amount: str, text: str) -> None:
    assert format_inr(Decimal(amount)) == text


def test_confirmation_goes_to_both_channels(dispatcher_for) -> None:
    provider = MockMessagingProvider()
    result = dispatcher_for(provider).send_order_confirmation(_order())

    assert result.sms.success and result.whatsapp.success
    assert result.sms.message_id.startswith("MOCK")
    assert provider.messages_for("sms")[0].to == "+919876543210"
    assert "ORD-202605-0007" in provider.messages_for("sms")[0].body
    assert "₹1,600" in provider.messages_for("whatsapp")[0].body


def test_one_failing_channel_does_not_affect_the_other(dispatcher_for) -> None:
    provider = MockMessagingProvider(failing_channels={"sms"})
    result = dispatcher_for(provider).send_status_update(_order(), OrderStatusV1.SHIPPED)

    assert result.sms.success is False
    assert result.sms.error == "sms channel unavailable"
    assert result.whatsapp.success is True
    assert result.any_success is True
    assert [m.channel for m in provider.sent] == ["whatsapp"]


def test_unusable_phone_fails_both_channels_without_sending(dispatcher_for) -> None:
    provider = MockMessagingProvider()
    result = dispatcher_for(provider).send_order_confirmation(_order(phone="12", address="no digits"))

    assert result.sms.error == NO_PHONE_ERROR
    assert result.whatsapp.error == NO_PHONE_ERROR
    assert result.any_success is False
    assert provider.sent == []


def test_phone_falls_back_to_delivery_address(dispatcher_for) -> None:
    provider = MockMessagingProvider()
    order = _order(phone="", address="Asha, 12 MG Road, Mumbai. Call 98765 43210")
    result = dispatcher_for(provider).send_order_confirmation(order)

    assert result.sms.success
    assert {m.to for m in provider.sent} == {"+919876543210"}


def test_closed_dispatcher_reports_both_channels_failed() -> None:
    provider = MockMessagingProvider()
    dispatcher = NotificationDispatcher(provider)
    dispatcher.close()

    result = dispatcher.send_status_update(_order(), OrderStatusV1.CONFIRMED)

    assert result.sms.success is False
    assert result.whatsapp.success is False
    assert "shutdown" in result.sms.error
    assert provider.sent == []


def test_template_failure_is_reported_not_raised(
    dispatcher_for, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken(order, status):
        raise KeyError("status")

    monkeypatch.setattr(templates, "whatsapp_status_update", broken)
    provider = MockMessagingProvider()

    result = dispatcher_for(provider).send_status_update(_order(), OrderStatusV1.SHIPPED)

    assert result.any_success is False
    assert provider.sent == []


class _CrashingProvider:
    name = "crashing"

    def send_text_message(self, to: str, body: str) -> str:
        raise RuntimeError("socket closed")

    def send_chat_message(self, to: str, body: str) -> str:
        return "SM123"


def test_unexpected_provider_errors_are_captured(dispatcher_for) -> None:
    result = dispatcher_for(_CrashingProvider()).send_order_confirmation(_order())

    assert result.sms.success is False
    assert result.sms.error == "socket closed"
    assert result.whatsapp.message_id == "SM123"


def test_status_templates_mention_status() -> None:
    order = _order()
    assert "is out for delivery" in sms_status_update(order, OrderStatusV1.SHIPPED)
    assert "2026-05-06" in sms_status_update(order, OrderStatusV1.SHIPPED)
    assert "has been cancelled" in sms_status_update(order, OrderStatusV1.CANCELLED)


def test_factory_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BOUQUET_MESSAGING_PROVIDER", raising=False)
    assert isinstance(get_messaging_provider(), MockMessagingProvider)


def test_factory_rejects_unknown_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOUQUET_MESSAGING_PROVIDER", "pigeon")
    with pytest.raises(ValueError):
        get_messaging_provider()


def test_factory_requires_twilio_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOUQUET_MESSAGING_PROVIDER", "twilio")
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)
    with pytest.raises(ValueError):
        get_messaging_provider()


def _twilio() -> TwilioMessagingProvider:
    return TwilioMessagingProvider(
        account_sid="AC123",
        auth_token="secret",
        sms_from="15550001111",
        status_callback_url="https://shop.example/api/notifications/status",
    )


def test_twilio_whatsapp_request(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    def fake_urlopen(req, data=None, timeout=None):
        captured["url"] = req.full_url
        captured["auth"] = req.get_header("Authorization")
        captured["form"] = urllib.parse.parse_qs(data.decode("utf-8"))
        return io.BytesIO(json.dumps({"sid": "SM999"}).encode("utf-8"))

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    assert _twilio().send_chat_message("+919876543210", "hello") == "SM999"
    assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
    assert captured["auth"].startswith("Basic ")
    assert captured["form"]["To"] == ["whatsapp:+919876543210"]
    assert captured["form"]["From"] == ["whatsapp:+14155238886"]
    assert captured["form"]["StatusCallback"] == ["https://shop.example/api/notifications/status"]


def test_twilio_sms_uses_plus_prefixed_sender(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    def fake_urlopen(req, data=None, timeout=None):
        captured["form"] = urllib.parse.parse_qs(data.decode("utf-8"))
        return io.BytesIO(b'{"sid": "SM1"}')

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    _twilio().send_text_message("+919876543210", "hello")
    assert captured["form"]["From"] == ["+15550001111"]
    assert captured["form"]["To"] == ["+919876543210"]


def test_twilio_http_error_becomes_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, data=None, timeout=None):
        raise urllib.error.HTTPError(
            req.full_url, 401, "Unauthorized", hdrs=None, fp=io.BytesIO(b'{"code": 20003}')
        )

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(ProviderError) as exc_info:
        _twilio().send_text_message("+919876543210", "hello")
    assert "401" in exc_info.value.message


def test_twilio_sms_without_sender_fails() -> None:
    provider = TwilioMessagingProvider(account_sid="AC123", auth_token="secret", sms_from="")
    with pytest.raises(ProviderError):
        provider.send_text_message("+919876543210", "hello")
