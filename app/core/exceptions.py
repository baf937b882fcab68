"""
Domain errors surfaced to the HTTP layer.
Each AppError carries its HTTP status and a machine-readable code; app/main.py renders them.
"""
from typing import Any


class AppError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()
        self.context = context

    def default_message(self) -> str:
        return "Internal server error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "status_code": self.status_code}


class AuthenticationRequired(AppError):
    status_code = 401
    code = "authentication_required"

    def default_message(self) -> str:
        return "Authentication required"


class ValidationFailed(AppError):
    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, field=field)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.field:
            body["field"] = self.field
        return body


class InvalidPackage(AppError):
    status_code = 400
    code = "invalid_package"

    def default_message(self) -> str:
        return "Package not found or inactive"


class InsufficientTokens(AppError):
    status_code = 402
    code = "insufficient_tokens"

    def __init__(self, required: int, balance: int | None = None) -> None:
        super().__init__(
            f"Insufficient tokens. You need at least {required} tokens for this operation.",
            required=required,
            balance=balance,
        )
        self.required = required
        self.balance = balance

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["required"] = self.required
        return body


class OrderNotFound(AppError):
    status_code = 404
    code = "order_not_found"

    def default_message(self) -> str:
        return "Order not found"


class ContentNotFound(AppError):
    status_code = 404
    code = "not_found"

    def default_message(self) -> str:
        return "Not found"


class TamperDetected(AppError):
    """Order amount no longer matches the catalog price. Flagged for audit; the order is failed."""

    status_code = 400
    code = "amount_mismatch"

    def __init__(self, order_id: str, amount: int, expected_amount: int | None) -> None:
        super().__init__(
            "Order amount does not match the package price",
            order_id=order_id,
            amount=amount,
            expected_amount=expected_amount,
        )
        self.order_id = order_id
        self.amount = amount
        self.expected_amount = expected_amount

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["security_flag"] = True
        body["orderId"] = self.order_id
        return body


class UpstreamUnavailable(AppError):
    """Generation provider or payment gateway failed; nothing was mutated."""

    status_code = 500
    code = "upstream_unavailable"

    def default_message(self) -> str:
        return "Upstream service unavailable, please retry"

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["retryable"] = True
        return body


class RateLimited(AppError):
    status_code = 429
    code = "rate_limited"

    def default_message(self) -> str:
        return "Too many purchases. Try again later."
