"""HTTP client for the Bouquet Bar API, used by the cart engine."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from packages.shared.schemas.pricing import AppliedCouponV1


class TransportError(Exception):
    """The API could not be reached or did not answer in time."""


class ApiError(Exception):
    def __init__(self, status: int, payload: Any) -> None:
        message = payload.get("message") if isinstance(payload, dict) else None
        super().__init__(f"API HTTP {status}: {message or payload!r}")
        self.status = status
        self.payload = payload


class CouponServiceUnavailable(Exception):
    """Coupon validation could not produce a verdict (network, timeout, server error)."""


class CouponRejected(Exception):
    def __init__(self, code: str, reason: str) -> None:
        super().__init__(f"Coupon {code} rejected: {reason}")
        self.code = code
        self.reason = reason


@dataclass(frozen=True, slots=True)
class CouponVerdict:
    valid: bool
    coupon: AppliedCouponV1 | None = None
    error: str | None = None


class CouponClient(Protocol):
    def validate(self, code: str, subtotal: Decimal) -> CouponVerdict: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ApiClient:
    def __init__(self, base_url: str, *, token: str | None = None, timeout: float = 10) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def request(self, method: str, path: str, body: Any = None) -> Any:
        req = urllib.request.Request(f"{self._base_url}{path}", method=method)
        req.add_header("Accept", "application/json")
        if self._token:
            req.add_header("Authorization", f"Bearer {self._token}")

        data = None
        if body is not None:
            req.add_header("Content-Type", "application/json")
            data = json.dumps(body, default=_json_default).encode("utf-8")

        try:
            with urllib.request.urlopen(req, data=data, timeout=self._timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raw = e.read().decode("utf-8", errors="replace")
            try:
                payload = json.loads(raw)
            except ValueError:
                payload = raw
            raise ApiError(e.code, payload) from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise TransportError(str(e)) from e

        return json.loads(raw) if raw else None

    def get(self, path: str) -> Any:
        return self.request("GET", path)

    def post(self, path: str, body: Any = None) -> Any:
        return self.request("POST", path, body)

    def put(self, path: str, body: Any = None) -> Any:
        return self.request("PUT", path, body)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)


class HttpCouponClient:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    def validate(self, code: str, subtotal: Decimal) -> CouponVerdict:
        try:
            data = self._api.post(
                "/api/coupons/validate", {"code": code, "cart_subtotal": subtotal}
            )
        except TransportError as e:
            raise CouponServiceUnavailable(str(e)) from e
        except ApiError as e:
            if e.status >= 500:
                raise CouponServiceUnavailable(str(e)) from e
            return CouponVerdict(valid=False, error=str(e))

        if not data.get("valid"):
            return CouponVerdict(valid=False, error=data.get("error") or "Invalid coupon code")
        return CouponVerdict(valid=True, coupon=AppliedCouponV1.model_validate(data["coupon"]))
