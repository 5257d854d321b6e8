from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tenant_billing.api.deps import get_tenant_context
from tenant_billing.business.currency.schemas import ExchangeRateCreate, ExchangeRateRead, ResolvedRateRead
from tenant_billing.business.currency.service import currency_resolver
from tenant_billing.core.database import get_db
from tenant_billing.core.rbac import require_permissions
from tenant_billing.platform.tenancy import TenantContext


router = APIRouter(prefix="/currency", tags=["currency"])


@router.post(
    "/rates",
    response_model=ExchangeRateRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("billing.rates.write"))],
)
def record_rate(
    payload: ExchangeRateCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> ExchangeRateRead:
    return currency_resolver.record_rate(db, ctx, payload)


@router.get("/rates", response_model=list[ExchangeRateRead])
def list_rates(db: Session = Depends(get_db)) -> list[ExchangeRateRead]:
    return currency_resolver.list_rates(db)


@router.get("/rates/resolve", response_model=ResolvedRateRead)
def resolve_rate(
    base: str = Query(min_length=3),
    target: str = Query(min_length=3),
    db: Session = Depends(get_db),
) -> ResolvedRateRead:
    return currency_resolver.resolve(db, base, target)
