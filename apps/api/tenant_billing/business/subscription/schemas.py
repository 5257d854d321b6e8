from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


SubscriptionStatus = Literal["ACTIVE", "FUTURE", "EXPIRED", "CANCELLED"]


class SubscriptionCreate(BaseModel):
    tenant_id: str | None = None
    plan_id: str = Field(min_length=1, max_length=32)
    extra_branches: int = Field(default=0, ge=0)
    extra_users: int = Field(default=0, ge=0)
    bonus_branches: int = Field(default=0, ge=0)
    bonus_users: int = Field(default=0, ge=0)
    auto_renew: bool = True
    currency: str | None = Field(default=None, min_length=3, max_length=16)
    start_date: datetime | None = None


class SubscriptionRenew(BaseModel):
    plan_id: str | None = Field(default=None, min_length=1, max_length=32)
    extra_branches: int | None = Field(default=None, ge=0)
    extra_users: int | None = Field(default=None, ge=0)
    bonus_branches: int | None = Field(default=None, ge=0)
    bonus_users: int | None = Field(default=None, ge=0)
    auto_renew: bool | None = None


class SubscriptionUpdate(BaseModel):
    extra_branches: int | None = Field(default=None, ge=0)
    extra_users: int | None = Field(default=None, ge=0)
    bonus_branches: int | None = Field(default=None, ge=0)
    bonus_users: int | None = Field(default=None, ge=0)
    auto_renew: bool | None = None
    grace_period_days: int | None = Field(default=None, ge=0, le=365)


class CancelSubscriptionRequest(BaseModel):
    reason: str = Field(min_length=1)


class ToggleAutoRenewRequest(BaseModel):
    enabled: bool


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    plan_id: str
    billing_cycle: str
    currency: str
    fee: Decimal
    start_date: datetime
    end_date: datetime
    trial_ends_at: datetime | None
    billing_cycle_anchor: datetime | None
    status: SubscriptionStatus | str
    cancel_at_period_end: bool
    cancellation_reason: str | None
    canceled_at: datetime | None
    included_branches_snapshot: int
    purchased_branches: int
    bonus_branches: int
    max_branches: int
    included_users_snapshot: int
    purchased_users: int
    bonus_users: int
    max_users: int
    auto_renew: bool
    grace_period_days: int
    previous_subscription_id: UUID | None
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime


class LifecycleRunResponse(BaseModel):
    renewed: int
    cancelled: int
    expired: int
    activated: int
