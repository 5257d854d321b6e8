from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing import audit, events
from tenant_billing.business.billing.service import BillingService
from tenant_billing.business.subscription.schemas import SubscriptionCreate, SubscriptionRead
from tenant_billing.business.subscription.service import SubscriptionService
from tenant_billing.core.database import Base
from tenant_billing.platform.clock import FixedClock, ensure_utc
from tenant_billing.platform.jobs import run_batch_job
from tenant_billing.platform.tenancy import TenantContext


NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_side_effects() -> Generator[None, None, None]:
    events.published_events.clear()
    audit.audit_entries.clear()
    yield
    events.published_events.clear()
    audit.audit_entries.clear()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture()
def billing(clock: FixedClock) -> BillingService:
    return BillingService(clock=clock)


@pytest.fixture()
def service(billing: BillingService, clock: FixedClock) -> SubscriptionService:
    return SubscriptionService(billing=billing, clock=clock)


def _ctx(tenant_id: str = "tenant-a") -> TenantContext:
    return TenantContext(user_id="lifecycle-user", tenant_id=tenant_id)


def _subscription(
    service: SubscriptionService,
    session: Session,
    *,
    days_ago: int,
    auto_renew: bool = True,
    tenant_id: str = "tenant-a",
) -> SubscriptionRead:
    return service.create_subscription(
        session,
        _ctx(tenant_id),
        SubscriptionCreate(plan_id="STD_M", start_date=NOW - timedelta(days=days_ago), auto_renew=auto_renew),
    )


def test_auto_renewal_runs_are_idempotent(db_session: Session, service: SubscriptionService, billing: BillingService) -> None:
    current = _subscription(service, db_session, days_ago=28)

    assert service.process_auto_renewals(db_session, NOW) == 1
    assert service.process_auto_renewals(db_session, NOW) == 0

    rows = service.list_subscriptions(db_session, _ctx())
    assert len(rows) == 2
    renewal = next(row for row in rows if row.previous_subscription_id == current.id)
    assert renewal.status == "FUTURE"
    assert ensure_utc(renewal.start_date) == ensure_utc(current.end_date)
    assert service.get_subscription(db_session, _ctx(), current.id).status == "ACTIVE"

    renewal_invoices = billing.list_invoices(db_session, _ctx(), subscription_id=renewal.id)
    assert len(renewal_invoices) == 1
    assert renewal_invoices[0].idempotency_key == f"subscription-renewal:{current.id}"

    renewed_events = [event for event in events.published_events if event["event_type"] == "subscription.renewed"]
    assert len(renewed_events) == 1
    assert renewed_events[0]["meta"]["job_name"] == "subscription.process_auto_renewals"


def test_auto_renewal_skips_subscriptions_outside_window(db_session: Session, service: SubscriptionService) -> None:
    _subscription(service, db_session, days_ago=5)
    _subscription(service, db_session, days_ago=28, auto_renew=False)

    assert service.process_auto_renewals(db_session, NOW) == 0


def test_activation_replaces_previous_period(db_session: Session, service: SubscriptionService) -> None:
    current = _subscription(service, db_session, days_ago=28)
    service.process_auto_renewals(db_session, NOW)

    assert service.activate_future_subscriptions(db_session, NOW + timedelta(days=1)) == 0
    assert service.activate_future_subscriptions(db_session, NOW + timedelta(days=2)) == 1

    assert service.get_subscription(db_session, _ctx(), current.id).status == "EXPIRED"
    active = service.get_active_subscription(db_session, _ctx())
    assert active.previous_subscription_id == current.id


def test_late_auto_renewal_starts_at_previous_end(
    db_session: Session,
    service: SubscriptionService,
    billing: BillingService,
) -> None:
    lapsed = _subscription(service, db_session, days_ago=31)
    assert ensure_utc(lapsed.end_date) < NOW

    assert service.process_auto_renewals(db_session, NOW) == 1

    renewal = next(
        row for row in service.list_subscriptions(db_session, _ctx()) if row.previous_subscription_id == lapsed.id
    )
    assert ensure_utc(renewal.start_date) == ensure_utc(lapsed.end_date)
    assert renewal.status == "ACTIVE"
    assert service.get_subscription(db_session, _ctx(), lapsed.id).status == "EXPIRED"

    invoice = billing.list_invoices(db_session, _ctx(), subscription_id=renewal.id)[0]
    assert ensure_utc(invoice.due_date) == ensure_utc(lapsed.end_date) + timedelta(days=7)


def test_cancel_drops_queued_renewal(
    db_session: Session,
    service: SubscriptionService,
    billing: BillingService,
) -> None:
    current = _subscription(service, db_session, days_ago=28)
    assert service.process_auto_renewals(db_session, NOW) == 1
    renewal = next(
        row for row in service.list_subscriptions(db_session, _ctx()) if row.previous_subscription_id == current.id
    )

    service.cancel_subscription(db_session, _ctx(), current.id, "moving to another provider")

    queued = service.get_subscription(db_session, _ctx(), renewal.id)
    assert queued.status == "CANCELLED"
    assert queued.cancellation_reason == "moving to another provider"
    renewal_invoice = billing.list_invoices(db_session, _ctx(), subscription_id=renewal.id)[0]
    assert renewal_invoice.status == "VOID"

    result = service.run_lifecycle(db_session, NOW + timedelta(days=3))

    assert result.activated == 0
    assert result.renewed == 0
    assert result.cancelled == 1
    assert service.get_subscription(db_session, _ctx(), current.id).status == "CANCELLED"
    assert service.get_subscription(db_session, _ctx(), renewal.id).status == "CANCELLED"


def test_expiration_waits_for_grace_period(db_session: Session, service: SubscriptionService) -> None:
    lapsed = _subscription(service, db_session, days_ago=35, auto_renew=False)

    assert service.process_expirations(db_session, NOW) == 0
    assert service.process_expirations(db_session, NOW + timedelta(days=2)) == 1

    assert service.get_subscription(db_session, _ctx(), lapsed.id).status == "EXPIRED"
    assert events.published_events[-1]["event_type"] == "subscription.expired"


def test_run_lifecycle_reports_each_phase(db_session: Session, service: SubscriptionService) -> None:
    _subscription(service, db_session, days_ago=28, tenant_id="tenant-renew")
    _subscription(service, db_session, days_ago=40, auto_renew=False, tenant_id="tenant-expire")
    cancelling = _subscription(service, db_session, days_ago=31, tenant_id="tenant-cancel")
    service.cancel_subscription(db_session, _ctx("tenant-cancel"), cancelling.id, "closing branch")
    service.create_subscription(
        db_session,
        _ctx("tenant-future"),
        SubscriptionCreate(plan_id="STD_M", start_date=NOW + timedelta(hours=1)),
    )

    result = service.run_lifecycle(db_session, NOW + timedelta(hours=2))

    assert result.renewed == 1
    assert result.expired == 1
    assert result.cancelled == 1
    assert result.activated == 1


def test_failed_candidate_is_skipped_and_counted(db_session: Session) -> None:
    job_name = "test.failing_candidates"
    before = REGISTRY.get_sample_value("billing_job_candidate_failures_total", {"job_name": job_name}) or 0.0
    processed: list[int] = []

    def process(candidate: int) -> bool:
        if candidate == 2:
            raise RuntimeError("boom")
        processed.append(candidate)
        return candidate != 3

    transitioned = run_batch_job(db_session, job_name, [1, 2, 3, 4], process)

    assert transitioned == 2
    assert processed == [1, 3, 4]
    assert REGISTRY.get_sample_value("billing_job_candidate_failures_total", {"job_name": job_name}) == before + 1
    assert REGISTRY.get_sample_value("billing_jobs_total", {"job_name": job_name, "status": "success"}) >= 1
