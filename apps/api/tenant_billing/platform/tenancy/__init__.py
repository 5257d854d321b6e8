from tenant_billing.platform.tenancy.context import SYSTEM_USER_ID, TenantContext, system_context
from tenant_billing.platform.tenancy.repository import BaseRepository, apply_tenant_filter, resolve_tenant_id

__all__ = [
    "SYSTEM_USER_ID",
    "TenantContext",
    "system_context",
    "BaseRepository",
    "apply_tenant_filter",
    "resolve_tenant_id",
]
