from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class PlanRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    billing_cycle: str
    base_fee: Decimal
    branch_price: Decimal
    included_branches: int
    user_price: Decimal
    included_users: int
    duration_days: int
    allow_addons: bool
    grace_period_days: int
