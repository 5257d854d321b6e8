from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_billing.business.tenants.models import TenantBillingProfile
from tenant_billing.platform.tenancy.repository import BaseRepository


class TenantProfileRepository(BaseRepository[TenantBillingProfile]):
    resource = "tenants.billing_profile"
    model = TenantBillingProfile

    def get_by_tenant(self, session: Session, tenant_id: str) -> TenantBillingProfile | None:
        return session.scalar(select(TenantBillingProfile).where(TenantBillingProfile.tenant_id == tenant_id))
