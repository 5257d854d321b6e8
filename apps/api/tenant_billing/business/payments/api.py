from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tenant_billing.api.deps import get_tenant_context
from tenant_billing.business.payments.schemas import (
    AllocatePaymentRequest,
    BatchPaymentRead,
    BatchPaymentRequest,
    CancelPaymentRequest,
    ChequeDetailUpdate,
    ChequeStatusUpdate,
    DeallocatePaymentRequest,
    PaymentAllocationRead,
    PaymentCreate,
    PaymentRead,
    RefundPaymentRequest,
)
from tenant_billing.business.payments.service import payment_service
from tenant_billing.core.database import get_db
from tenant_billing.platform.tenancy import TenantContext


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.create_payment(db, ctx, payload)


@router.post("/batch", response_model=BatchPaymentRead, status_code=status.HTTP_201_CREATED)
def process_batch_payment(
    payload: BatchPaymentRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> BatchPaymentRead:
    return payment_service.process_batch_payment(db, ctx, payload)


@router.get("", response_model=list[PaymentRead])
def list_payments(
    tenant_id: str | None = Query(default=None),
    payment_status: str | None = Query(default=None, alias="status"),
    method: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> list[PaymentRead]:
    return payment_service.list_payments(db, ctx, tenant_id=tenant_id, status=payment_status, method=method)


@router.get("/{payment_id}", response_model=PaymentRead)
def get_payment(
    payment_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.get_payment(db, ctx, payment_id)


@router.get("/{payment_id}/allocations", response_model=list[PaymentAllocationRead])
def list_allocations(
    payment_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> list[PaymentAllocationRead]:
    return payment_service.list_allocations(db, ctx, payment_id)


@router.post("/{payment_id}/allocations", response_model=PaymentRead)
def allocate_payment(
    payment_id: uuid.UUID,
    payload: AllocatePaymentRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.allocate(db, ctx, payment_id, payload.invoice_id, payload.amount)


@router.post("/{payment_id}/deallocations", response_model=PaymentRead)
def deallocate_payment(
    payment_id: uuid.UUID,
    payload: DeallocatePaymentRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.deallocate(db, ctx, payment_id, payload.invoice_id, payload.amount)


@router.post("/{payment_id}/cancel", response_model=PaymentRead)
def cancel_payment(
    payment_id: uuid.UUID,
    payload: CancelPaymentRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.cancel_payment(db, ctx, payment_id, payload.reason)


@router.post("/{payment_id}/refunds", response_model=PaymentRead)
def refund_payment(
    payment_id: uuid.UUID,
    payload: RefundPaymentRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.refund_payment(db, ctx, payment_id, payload.reason, payload.amount)


@router.post("/{payment_id}/cheque/status", response_model=PaymentRead)
def update_cheque_status(
    payment_id: uuid.UUID,
    payload: ChequeStatusUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.update_cheque_status(db, ctx, payment_id, payload.status, payload.note)


@router.patch("/{payment_id}/cheque", response_model=PaymentRead)
def update_cheque_details(
    payment_id: uuid.UUID,
    payload: ChequeDetailUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentRead:
    return payment_service.update_cheque_details(db, ctx, payment_id, payload)
