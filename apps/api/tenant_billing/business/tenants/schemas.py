from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


MarkupType = Literal["NONE", "PERCENTAGE"]


class TenantBillingProfileUpsert(BaseModel):
    legal_name: str = Field(min_length=1, max_length=255)
    address: str | None = None
    tax_number: str | None = Field(default=None, max_length=64)
    functional_currency: str = Field(default="USD", min_length=3, max_length=16)
    markup_type: MarkupType = "NONE"
    markup_value: Decimal = Field(default=Decimal("0"), ge=Decimal("0"))


class TenantBillingProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    legal_name: str
    address: str | None
    tax_number: str | None
    functional_currency: str
    markup_type: MarkupType | str
    markup_value: Decimal
    created_at: datetime
    updated_at: datetime
