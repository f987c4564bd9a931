from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for order pipeline errors surfaced to API callers."""

    status_code = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or [{"code": self.code, "message": message}]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "errors": self.errors,
            "retryable": self.retryable,
        }


class ValidationError(PipelineError):
    status_code = 422
    code = "validation_error"


class AuthRequiredError(PipelineError):
    status_code = 401
    code = "auth_required"

    def __init__(self, message: str = "Sign in to continue") -> None:
        super().__init__(message)


class NotFoundError(PipelineError):
    status_code = 404
    code = "not_found"


class BusinessRuleRejection(PipelineError):
    status_code = 409
    code = "business_rule_rejection"


class CouponInvalidError(BusinessRuleRejection):
    code = "coupon_invalid"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Coupon no longer valid: {reason}")
        self.reason = reason


class PricingMismatchError(BusinessRuleRejection):
    code = "pricing_mismatch"


class OutOfStockError(BusinessRuleRejection):
    code = "out_of_stock"


class InvalidStatusTransitionError(BusinessRuleRejection):
    code = "invalid_status_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Order cannot move from {current} to {target}")
        self.current = current
        self.target = target


class SchedulerBusyError(BusinessRuleRejection):
    code = "scheduler_busy"

    def __init__(self) -> None:
        super().__init__("Scheduler is already running, please wait")


class PersistenceError(PipelineError):
    status_code = 503
    code = "persistence_error"
    retryable = True

    def __init__(self, message: str = "We could not save your order. Please try again.") -> None:
        super().__init__(message)


class ProviderError(PipelineError):
    """Messaging provider failure. Caught by the dispatcher, never returned to checkout."""

    status_code = 502
    code = "provider_error"


class InternalError(PipelineError):
    def __init__(self, message: str = "Internal Server Error") -> None:
        super().__init__(message)
