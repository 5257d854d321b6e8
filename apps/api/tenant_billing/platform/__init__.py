from tenant_billing.platform.clock import Clock, FixedClock, SystemClock, ensure_utc, utcnow
from tenant_billing.platform.errors import (
    BillingError,
    ConflictError,
    InvariantViolation,
    NotFoundError,
    RateNotFound,
    ValidationError,
)
from tenant_billing.platform.tenancy import BaseRepository, TenantContext, resolve_tenant_id, system_context

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "ensure_utc",
    "utcnow",
    "BillingError",
    "ConflictError",
    "InvariantViolation",
    "NotFoundError",
    "RateNotFound",
    "ValidationError",
    "BaseRepository",
    "TenantContext",
    "resolve_tenant_id",
    "system_context",
]
