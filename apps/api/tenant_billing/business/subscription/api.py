from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from tenant_billing.api.deps import get_tenant_context
from tenant_billing.business.subscription.schemas import (
    CancelSubscriptionRequest,
    LifecycleRunResponse,
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionRenew,
    SubscriptionUpdate,
    ToggleAutoRenewRequest,
)
from tenant_billing.business.subscription.service import subscription_service
from tenant_billing.core.database import get_db
from tenant_billing.core.rbac import require_permissions
from tenant_billing.platform.tenancy import TenantContext


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.create_subscription(db, ctx, payload)


@router.get("", response_model=list[SubscriptionRead])
def list_subscriptions(
    tenant_id: str | None = Query(default=None),
    subscription_status: str | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> list[SubscriptionRead]:
    return subscription_service.list_subscriptions(db, ctx, tenant_id=tenant_id, status=subscription_status)


@router.get("/active", response_model=SubscriptionRead)
def get_active_subscription(
    tenant_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.get_active_subscription(db, ctx, tenant_id)


@router.post(
    "/jobs/lifecycle",
    response_model=LifecycleRunResponse,
    dependencies=[Depends(require_permissions("billing.jobs.run"))],
)
def run_lifecycle(db: Session = Depends(get_db)) -> LifecycleRunResponse:
    return subscription_service.run_lifecycle(db)


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.get_subscription(db, ctx, subscription_id)


@router.patch("/{subscription_id}", response_model=SubscriptionRead)
def update_subscription(
    subscription_id: uuid.UUID,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.update_subscription(db, ctx, subscription_id, payload)


@router.post("/{subscription_id}/renew", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def renew_subscription(
    subscription_id: uuid.UUID,
    payload: SubscriptionRenew | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.renew_subscription(db, ctx, subscription_id, payload)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionRead)
def cancel_subscription(
    subscription_id: uuid.UUID,
    payload: CancelSubscriptionRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.cancel_subscription(db, ctx, subscription_id, payload.reason)


@router.post("/{subscription_id}/auto-renew", response_model=SubscriptionRead)
def toggle_auto_renew(
    subscription_id: uuid.UUID,
    payload: ToggleAutoRenewRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> SubscriptionRead:
    return subscription_service.toggle_auto_renew(db, ctx, subscription_id, payload.enabled)


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subscription(
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Response:
    subscription_service.delete_subscription(db, ctx, subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
