from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from tenant_billing import audit
from tenant_billing.business.tenants.models import TenantBillingProfile
from tenant_billing.business.tenants.repository import TenantProfileRepository
from tenant_billing.business.tenants.schemas import TenantBillingProfileRead, TenantBillingProfileUpsert
from tenant_billing.platform.errors import NotFoundError
from tenant_billing.platform.tenancy import TenantContext, resolve_tenant_id


@dataclass(slots=True)
class TenantProfileService:
    profile_repository: TenantProfileRepository = TenantProfileRepository()

    def upsert_profile(
        self,
        session: Session,
        ctx: TenantContext,
        tenant_id: str,
        payload: TenantBillingProfileUpsert,
    ) -> TenantBillingProfileRead:
        tenant_id = resolve_tenant_id(ctx, tenant_id)
        data = payload.model_dump(mode="python")
        data["functional_currency"] = data["functional_currency"].upper()

        profile = self.profile_repository.get_by_tenant(session, tenant_id)
        before = TenantBillingProfileRead.model_validate(profile).model_dump(mode="json") if profile is not None else None
        if profile is None:
            profile = TenantBillingProfile(tenant_id=tenant_id, **data)
        else:
            for key, value in data.items():
                setattr(profile, key, value)

        session.add(profile)
        session.commit()
        session.refresh(profile)

        result = TenantBillingProfileRead.model_validate(profile)
        audit.record(
            actor_user_id=ctx.user_id,
            tenant_id=tenant_id,
            entity_type="tenants.billing_profile",
            entity_id=str(profile.id),
            action="upsert",
            before=before,
            after=result.model_dump(mode="json"),
            correlation_id=ctx.correlation_id,
        )
        return result

    def get_profile(self, session: Session, ctx: TenantContext, tenant_id: str) -> TenantBillingProfileRead:
        tenant_id = resolve_tenant_id(ctx, tenant_id)
        profile = self.profile_repository.get_by_tenant(session, tenant_id)
        if profile is None:
            raise NotFoundError("tenant billing profile not found")
        return TenantBillingProfileRead.model_validate(profile)

    def find_profile(self, session: Session, tenant_id: str) -> TenantBillingProfile | None:
        return self.profile_repository.get_by_tenant(session, tenant_id)


tenant_profile_service = TenantProfileService()
