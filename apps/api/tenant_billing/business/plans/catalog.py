from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Literal

from tenant_billing.platform.errors import ValidationError


BillingCycle = Literal["TRIAL", "MONTHLY", "YEARLY"]


@dataclass(frozen=True, slots=True)
class PlanDefinition:
    id: str
    name: str
    billing_cycle: BillingCycle
    base_fee: Decimal
    branch_price: Decimal
    included_branches: int
    user_price: Decimal
    included_users: int
    duration_days: int
    allow_addons: bool
    grace_period_days: int

    @property
    def is_trial(self) -> bool:
        return self.billing_cycle == "TRIAL"

    def fee_for(self, extra_branches: int, extra_users: int) -> Decimal:
        return self.base_fee + extra_branches * self.branch_price + extra_users * self.user_price


_PLANS: MappingProxyType[str, PlanDefinition] = MappingProxyType(
    {
        "TRIAL": PlanDefinition(
            id="TRIAL",
            name="Free Trial",
            billing_cycle="TRIAL",
            base_fee=Decimal("0"),
            branch_price=Decimal("0"),
            included_branches=1,
            user_price=Decimal("0"),
            included_users=3,
            duration_days=14,
            allow_addons=False,
            grace_period_days=3,
        ),
        "STD_M": PlanDefinition(
            id="STD_M",
            name="Standard Monthly",
            billing_cycle="MONTHLY",
            base_fee=Decimal("35"),
            branch_price=Decimal("20"),
            included_branches=1,
            user_price=Decimal("10"),
            included_users=4,
            duration_days=30,
            allow_addons=True,
            grace_period_days=7,
        ),
        "STD_Y": PlanDefinition(
            id="STD_Y",
            name="Standard Yearly",
            billing_cycle="YEARLY",
            base_fee=Decimal("300"),
            branch_price=Decimal("150"),
            included_branches=1,
            user_price=Decimal("100"),
            included_users=5,
            duration_days=365,
            allow_addons=True,
            grace_period_days=7,
        ),
    }
)


def get_plan(plan_id: str | None) -> PlanDefinition | None:
    if not plan_id:
        return None
    return _PLANS.get(plan_id.strip().upper())


def require_plan(plan_id: str | None) -> PlanDefinition:
    plan = get_plan(plan_id)
    if plan is None:
        raise ValidationError(f"invalid plan id: {plan_id}", field="plan_id")
    return plan


def list_plans() -> list[PlanDefinition]:
    return list(_PLANS.values())
