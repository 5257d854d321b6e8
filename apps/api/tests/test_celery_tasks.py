from __future__ import annotations

import tenant_billing.tasks  # noqa: F401
from tenant_billing.core.celery_app import celery_app


def test_only_billing_jobs_are_registered() -> None:
    registered = {name for name in celery_app.tasks if name.startswith("tenant_billing.")}

    assert registered == {
        "tenant_billing.tasks.run_subscription_lifecycle",
        "tenant_billing.tasks.mark_overdue_invoices",
    }
    assert "tenant_billing.tasks.ping" not in celery_app.tasks


def test_beat_schedule_points_at_registered_tasks() -> None:
    schedule = celery_app.conf.beat_schedule

    assert set(schedule) == {"subscription-lifecycle", "invoice-overdue"}
    for entry in schedule.values():
        assert entry["task"] in celery_app.tasks
