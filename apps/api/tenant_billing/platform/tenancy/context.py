from __future__ import annotations

from dataclasses import dataclass


SYSTEM_USER_ID = "system"


@dataclass(slots=True)
class TenantContext:
    """Caller identity handed to the engine after authorization has already happened."""

    user_id: str
    tenant_id: str | None = None
    is_super_admin: bool = False
    functional_currency: str | None = None
    correlation_id: str | None = None


def system_context(correlation_id: str | None = None) -> TenantContext:
    return TenantContext(user_id=SYSTEM_USER_ID, is_super_admin=True, correlation_id=correlation_id)
