from __future__ import annotations

from fastapi import APIRouter

from tenant_billing.business.plans.catalog import list_plans, require_plan
from tenant_billing.business.plans.schemas import PlanRead


router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("", response_model=list[PlanRead])
def get_plans() -> list[PlanRead]:
    return [PlanRead.model_validate(plan) for plan in list_plans()]


@router.get("/{plan_id}", response_model=PlanRead)
def get_plan(plan_id: str) -> PlanRead:
    return PlanRead.model_validate(require_plan(plan_id))
