from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ExchangeRateCreate(BaseModel):
    base_currency: str = Field(min_length=3, max_length=16)
    target_currency: str = Field(min_length=3, max_length=16)
    rate: Decimal = Field(gt=Decimal("0"))
    source: str | None = None
    last_updated: datetime | None = None


class ExchangeRateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    base_currency: str
    target_currency: str
    rate: Decimal
    source: str | None
    last_updated: datetime


class ResolvedRateRead(BaseModel):
    base_currency: str
    target_currency: str
    rate: Decimal
