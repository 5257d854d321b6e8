from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


PaymentStatus = Literal["PENDING", "COMPLETED", "FAILED", "REFUNDED"]
PaymentMethod = Literal["CASH", "BANK_TRANSFER", "CARD", "CHEQUE", "OTHER"]
ChequeStatus = Literal["PENDING", "CLEARED", "BOUNCED", "CANCELLED"]


class ChequeDetailCreate(BaseModel):
    cheque_number: str = Field(min_length=1, max_length=64)
    bank_name: str = Field(min_length=1, max_length=255)
    branch: str | None = Field(default=None, max_length=255)
    issue_date: datetime
    due_date: datetime
    note: str | None = None

    @model_validator(mode="after")
    def validate_dates(self) -> ChequeDetailCreate:
        if self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        return self


class ChequeDetailUpdate(BaseModel):
    cheque_number: str | None = Field(default=None, min_length=1, max_length=64)
    bank_name: str | None = Field(default=None, min_length=1, max_length=255)
    branch: str | None = Field(default=None, max_length=255)
    issue_date: datetime | None = None
    due_date: datetime | None = None
    note: str | None = None


class ChequeDetailRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    cheque_number: str
    bank_name: str
    branch: str | None
    issue_date: datetime
    due_date: datetime
    status: ChequeStatus | str
    cleared_at: datetime | None
    note: str | None


class AllocationInput(BaseModel):
    invoice_id: UUID
    amount: Decimal = Field(gt=Decimal("0"))


class PaymentCreate(BaseModel):
    tenant_id: str | None = None
    amount: Decimal = Field(gt=Decimal("0"))
    currency: str = Field(min_length=3, max_length=16)
    method: PaymentMethod
    payment_date: datetime | None = None
    notes: str | None = None
    cheque_detail: ChequeDetailCreate | None = None
    allocations: list[AllocationInput] = Field(default_factory=list)


class AllocatePaymentRequest(BaseModel):
    invoice_id: UUID
    amount: Decimal = Field(gt=Decimal("0"))


class DeallocatePaymentRequest(BaseModel):
    invoice_id: UUID
    amount: Decimal | None = Field(default=None, gt=Decimal("0"))


class CancelPaymentRequest(BaseModel):
    reason: str = Field(min_length=1)


class RefundPaymentRequest(BaseModel):
    reason: str = Field(min_length=1)
    amount: Decimal | None = Field(default=None, gt=Decimal("0"))


class ChequeStatusUpdate(BaseModel):
    status: Literal["CLEARED", "BOUNCED", "CANCELLED"]
    note: str | None = None


class BatchPaymentItem(BaseModel):
    amount: Decimal = Field(gt=Decimal("0"))
    method: PaymentMethod
    payment_date: datetime | None = None
    notes: str | None = None
    cheque_detail: ChequeDetailCreate | None = None


class BatchInvoicePayment(BaseModel):
    invoice_id: UUID
    amount: Decimal = Field(gt=Decimal("0"))


class BatchPaymentRequest(BaseModel):
    tenant_id: str | None = None
    currency: str = Field(min_length=3, max_length=16)
    payments: list[BatchPaymentItem] = Field(min_length=1)
    invoices_to_pay: list[BatchInvoicePayment] = Field(default_factory=list)


class PaymentAllocationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    invoice_id: UUID
    amount: Decimal
    created_at: datetime


class PaymentRefundRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    amount: Decimal
    reason: str
    created_by: str
    created_at: datetime


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    amount: Decimal
    currency: str
    method: PaymentMethod | str
    payment_date: datetime
    base_exchange_rate: Decimal
    final_exchange_rate: Decimal
    amount_in_functional_currency: Decimal
    functional_currency: str
    refunded_amount: Decimal
    allocated_amount: Decimal
    unallocated_amount: Decimal
    status: PaymentStatus | str
    cancellation_reason: str | None
    notes: str | None
    version: int
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime
    cheque_detail: ChequeDetailRead | None = None
    allocations: list[PaymentAllocationRead] = Field(default_factory=list)
    refunds: list[PaymentRefundRead] = Field(default_factory=list)


class BatchPaymentRead(BaseModel):
    payments: list[PaymentRead]
    allocated_total: Decimal
