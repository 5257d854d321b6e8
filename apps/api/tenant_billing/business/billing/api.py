from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tenant_billing.api.deps import get_tenant_context
from tenant_billing.business.billing.schemas import (
    GenerateInvoiceRequest,
    InvoiceRead,
    OutstandingBalanceRead,
    OverdueRunResponse,
    VoidInvoiceRequest,
    WriteOffInvoiceRequest,
)
from tenant_billing.business.billing.service import billing_service
from tenant_billing.core.database import get_db
from tenant_billing.core.rbac import require_permissions
from tenant_billing.platform.tenancy import TenantContext


router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/invoices", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def generate_invoice(
    payload: GenerateInvoiceRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceRead:
    return billing_service.generate_invoice(db, ctx, payload)


@router.get("/invoices", response_model=list[InvoiceRead])
def list_invoices(
    tenant_id: str | None = Query(default=None),
    invoice_status: str | None = Query(default=None, alias="status"),
    subscription_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> list[InvoiceRead]:
    return billing_service.list_invoices(
        db,
        ctx,
        tenant_id=tenant_id,
        status=invoice_status,
        subscription_id=subscription_id,
    )


@router.get("/invoices/outstanding", response_model=list[OutstandingBalanceRead])
def get_outstanding_balance(
    tenant_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> list[OutstandingBalanceRead]:
    return billing_service.get_outstanding_balance(db, ctx, tenant_id)


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceRead:
    return billing_service.get_invoice(db, ctx, invoice_id)


@router.post("/invoices/{invoice_id}/void", response_model=InvoiceRead)
def void_invoice(
    invoice_id: uuid.UUID,
    payload: VoidInvoiceRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceRead:
    return billing_service.void_invoice(db, ctx, invoice_id, payload.reason)


@router.post("/invoices/{invoice_id}/write-off", response_model=InvoiceRead)
def write_off_invoice(
    invoice_id: uuid.UUID,
    payload: WriteOffInvoiceRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceRead:
    return billing_service.write_off_invoice(db, ctx, invoice_id, payload.reason)


@router.post(
    "/jobs/mark-overdue",
    response_model=OverdueRunResponse,
    dependencies=[Depends(require_permissions("billing.jobs.run"))],
)
def run_mark_overdue(db: Session = Depends(get_db)) -> OverdueRunResponse:
    return OverdueRunResponse(transitioned=billing_service.mark_overdue_invoices(db))
