from tenant_billing.business.plans.catalog import BillingCycle, PlanDefinition, get_plan, list_plans, require_plan
from tenant_billing.business.plans.schemas import PlanRead

__all__ = [
    "BillingCycle",
    "PlanDefinition",
    "PlanRead",
    "get_plan",
    "list_plans",
    "require_plan",
]
