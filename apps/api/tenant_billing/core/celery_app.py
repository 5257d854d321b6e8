from celery import Celery

from tenant_billing.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "tenant_billing",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["tenant_billing.tasks"],
)

if settings.billing_jobs_enabled:
    celery_app.conf.beat_schedule = {
        "subscription-lifecycle": {
            "task": "tenant_billing.tasks.run_subscription_lifecycle",
            "schedule": float(settings.billing_jobs_interval_seconds),
        },
        "invoice-overdue": {
            "task": "tenant_billing.tasks.mark_overdue_invoices",
            "schedule": float(settings.billing_jobs_interval_seconds),
        },
    }

