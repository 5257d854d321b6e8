from __future__ import annotations

from fastapi import Depends, Header, Request

from tenant_billing.context import get_correlation_id
from tenant_billing.core.auth import AuthUser, get_current_user
from tenant_billing.core.rbac import is_super_admin
from tenant_billing.platform.tenancy import TenantContext


def get_tenant_context(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
    tenant_id_header: str | None = Header(default=None, alias="x-tenant-id"),
    functional_currency_header: str | None = Header(default=None, alias="x-functional-currency"),
) -> TenantContext:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "correlation_id", None)
    super_admin = is_super_admin(auth_user)

    # A token-bound tenant wins over the header for everyone except super admins.
    tenant_id = tenant_id_header if super_admin else (auth_user.tenant_id or tenant_id_header)

    return TenantContext(
        user_id=auth_user.sub,
        tenant_id=tenant_id,
        is_super_admin=super_admin,
        functional_currency=functional_currency_header.upper() if functional_currency_header else None,
        correlation_id=correlation_id,
    )
