from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


InvoiceStatus = Literal["DRAFT", "ISSUED", "PARTIALLY_PAID", "PAID", "OVERDUE", "VOID", "UNCOLLECTIBLE"]
InvoiceType = Literal["NEW_SUBSCRIPTION", "RENEWAL", "UPGRADE", "MANUAL"]
InvoiceItemType = Literal["BASE_PLAN", "ADDON_BRANCH", "ADDON_USER", "OTHER"]


class InvoiceItemCreate(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    item_type: InvoiceItemType = "OTHER"
    quantity: Decimal = Field(ge=Decimal("0"))
    unit_price: Decimal = Field(ge=Decimal("0"))
    period_start: datetime | None = None
    period_end: datetime | None = None


class GenerateInvoiceRequest(BaseModel):
    tenant_id: str | None = None
    subscription_id: UUID | None = None
    invoice_type: InvoiceType = "MANUAL"
    currency: str | None = Field(default=None, min_length=3, max_length=16)
    due_date: datetime | None = None
    tax_rate: Decimal | None = Field(default=None, ge=Decimal("0"), le=Decimal("1"))
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=255)
    items: list[InvoiceItemCreate] = Field(min_length=1)


class InvoiceItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    description: str
    item_type: InvoiceItemType | str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    period_start: datetime | None
    period_end: datetime | None


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    subscription_id: UUID | None
    invoice_number: str
    idempotency_key: str | None
    invoice_type: InvoiceType | str
    currency: str
    status: InvoiceStatus | str
    issue_date: datetime
    due_date: datetime
    billed_to_name: str
    billed_to_address: str | None
    billed_to_tax_number: str | None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    status_reason: str | None
    version: int
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime
    items: list[InvoiceItemRead] = Field(default_factory=list)


class VoidInvoiceRequest(BaseModel):
    reason: str = Field(min_length=1)


class WriteOffInvoiceRequest(BaseModel):
    reason: str = Field(min_length=1)


class OutstandingBalanceRead(BaseModel):
    tenant_id: str
    currency: str
    invoice_count: int
    balance_due: Decimal


class OverdueRunResponse(BaseModel):
    transitioned: int
