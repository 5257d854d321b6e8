from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_billing.api.deps import get_tenant_context
from tenant_billing.business.tenants.schemas import TenantBillingProfileRead, TenantBillingProfileUpsert
from tenant_billing.business.tenants.service import tenant_profile_service
from tenant_billing.core.database import get_db
from tenant_billing.platform.tenancy import TenantContext


router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.put("/{tenant_id}/billing-profile", response_model=TenantBillingProfileRead)
def upsert_billing_profile(
    tenant_id: str,
    payload: TenantBillingProfileUpsert,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> TenantBillingProfileRead:
    return tenant_profile_service.upsert_profile(db, ctx, tenant_id, payload)


@router.get("/{tenant_id}/billing-profile", response_model=TenantBillingProfileRead)
def get_billing_profile(
    tenant_id: str,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> TenantBillingProfileRead:
    return tenant_profile_service.get_profile(db, ctx, tenant_id)
