from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from tenant_billing.business.billing.api import router as billing_router
from tenant_billing.business.currency.api import router as currency_router
from tenant_billing.business.payments.api import router as payments_router
from tenant_billing.business.plans.api import router as plans_router
from tenant_billing.business.resources.api import router as resources_router
from tenant_billing.business.subscription.api import router as subscriptions_router
from tenant_billing.business.tenants.api import router as tenants_router
from tenant_billing.core.auth import AuthUser, get_current_user
from tenant_billing.core.config import get_settings
from tenant_billing.core.rbac import require_permissions
from tenant_billing.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(plans_router)
router.include_router(currency_router)
router.include_router(tenants_router)
router.include_router(subscriptions_router)
router.include_router(billing_router)
router.include_router(payments_router)
router.include_router(resources_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str] | None]:
    return {
        "sub": user.sub,
        "roles": user.roles,
        "tenant_id": user.tenant_id,
    }


@router.get("/metrics", tags=["system"])
def metrics(_: AuthUser = Depends(require_permissions("system.metrics.read"))) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
