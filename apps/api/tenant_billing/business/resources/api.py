from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_billing.api.deps import get_tenant_context
from tenant_billing.business.resources.service import ResourceKind, ResourceOwnerRead, load_resource_owner
from tenant_billing.core.database import get_db
from tenant_billing.platform.tenancy import TenantContext


router = APIRouter(prefix="/resources", tags=["resources"])


@router.get("/{kind}/{resource_id}", response_model=ResourceOwnerRead)
def get_resource_owner(
    kind: ResourceKind,
    resource_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> ResourceOwnerRead:
    return load_resource_owner(db, ctx, kind, resource_id)
