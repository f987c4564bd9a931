from __future__ import annotations

import os
import re

_PHONE_IN_TEXT = re.compile(r"\+?[\d\s\-()]{10,}")
_NON_DIGIT_OR_PLUS = re.compile(r"[^\d+]")
_NON_DIGIT = re.compile(r"\D")


def default_country_code() -> str:
    return os.getenv("BOUQUET_DEFAULT_COUNTRY_CODE", "91").strip().lstrip("+") or "91"


def normalize_phone(raw: str | None, country_code: str | None = None) -> str | None:
    """Return an E.164-style number, or None when the input is unusable.

    A 10-digit local mobile number (starting 6-9) gets the default country code; a
    number already carrying the country code gets a `+`; other numbers of 10 digits or
    more are treated as international.
    """

    if not raw:
        return None

    cc = country_code or default_country_code()
    cleaned = _NON_DIGIT_OR_PLUS.sub("", raw)
    digits = _NON_DIGIT.sub("", cleaned)

    if len(digits) == 10 and digits[0] in "6789":
        return f"+{cc}{digits}"
    if len(digits) == len(cc) + 10 and digits.startswith(cc) and digits[len(cc)] in "6789":
        return f"+{digits}"
    if cleaned.startswith("+") and len(digits) >= 10:
        return f"+{digits}"
    if len(digits) >= 10:
        return f"+{digits}"
    return None


def order_phone(phone: str | None, delivery_address: str | None = None) -> str | None:
    """Pick the phone to notify: the order's phone field, else one found in the address."""

    if phone:
        return normalize_phone(phone)
    if delivery_address:
        match = _PHONE_IN_TEXT.search(delivery_address)
        if match:
            return normalize_phone(match.group(0))
    return None


def mask_phone(phone: str | None) -> str:
    if not phone or len(phone) < 7:
        return "***"
    if phone.startswith("+91") and len(phone) == 13:
        return f"+91******{phone[-4:]}"
    return f"{phone[:3]}******{phone[-4:]}"
