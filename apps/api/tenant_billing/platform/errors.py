from __future__ import annotations

from fastapi import HTTPException, status


class BillingError(HTTPException):
    """Base error for engine failures.

    Subclasses fix the HTTP status so routers can let them propagate untouched; ``code`` is the
    machine-readable reason rendered next to ``detail``.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "BILLING_ERROR"

    def __init__(self, detail: str, *, code: str | None = None, field: str | None = None) -> None:
        super().__init__(status_code=type(self).status_code, detail=detail)
        self.code = code or self.default_code
        self.field = field


class ValidationError(BillingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_ARGUMENT"


class NotFoundError(BillingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(BillingError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class InvariantViolation(BillingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "INVARIANT_VIOLATION"


class RateNotFound(BillingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, base_currency: str, target_currency: str) -> None:
        super().__init__(f"exchange rate not found for {base_currency} -> {target_currency}")
        self.base_currency = base_currency
        self.target_currency = target_currency
