from __future__ import annotations

from tenant_billing.business.billing.service import billing_service
from tenant_billing.business.subscription.service import subscription_service
from tenant_billing.core.celery_app import celery_app
from tenant_billing.core.database import SessionLocal


@celery_app.task(name="tenant_billing.tasks.run_subscription_lifecycle")
def run_subscription_lifecycle() -> dict[str, int]:
    with SessionLocal() as session:
        return subscription_service.run_lifecycle(session).model_dump()


@celery_app.task(name="tenant_billing.tasks.mark_overdue_invoices")
def mark_overdue_invoices() -> int:
    with SessionLocal() as session:
        return billing_service.mark_overdue_invoices(session)
