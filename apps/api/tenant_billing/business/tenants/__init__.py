from tenant_billing.business.tenants.models import TenantBillingProfile
from tenant_billing.business.tenants.schemas import MarkupType, TenantBillingProfileRead, TenantBillingProfileUpsert
from tenant_billing.business.tenants.service import TenantProfileService, tenant_profile_service

__all__ = [
    "MarkupType",
    "TenantBillingProfile",
    "TenantBillingProfileRead",
    "TenantBillingProfileUpsert",
    "TenantProfileService",
    "tenant_profile_service",
]
