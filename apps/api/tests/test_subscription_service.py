from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing import audit, events
from tenant_billing.business.billing.service import BillingService
from tenant_billing.business.subscription.schemas import SubscriptionCreate, SubscriptionRenew, SubscriptionUpdate
from tenant_billing.business.subscription.service import SubscriptionService
from tenant_billing.core.database import Base
from tenant_billing.platform.clock import FixedClock, ensure_utc
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
    return TenantContext(user_id="subscription-user", tenant_id=tenant_id, correlation_id="corr-subscription")


def test_create_standard_subscription_snapshots_plan_and_bills(
    db_session: Session,
    service: SubscriptionService,
    billing: BillingService,
) -> None:
    created = service.create_subscription(
        db_session,
        _ctx(),
        SubscriptionCreate(plan_id="STD_M", extra_branches=1, extra_users=2),
    )

    assert created.status == "ACTIVE"
    assert created.fee == Decimal("75")
    assert created.max_branches == 2
    assert created.max_users == 6
    assert ensure_utc(created.end_date) - ensure_utc(created.start_date) == timedelta(days=30)
    assert created.auto_renew is True

    invoices = billing.list_invoices(db_session, _ctx(), subscription_id=created.id)
    assert len(invoices) == 1
    invoice = invoices[0]
    assert invoice.invoice_type == "NEW_SUBSCRIPTION"
    assert invoice.total_amount == Decimal("75")
    assert [item.item_type for item in invoice.items] == ["BASE_PLAN", "ADDON_BRANCH", "ADDON_USER"]

    event_types = [event["event_type"] for event in events.published_events]
    assert "invoice.generated" in event_types
    assert "subscription.created" in event_types
    assert audit.audit_entries[-1]["action"] == "create"


def test_trial_subscription_is_free_and_never_auto_renews(
    db_session: Session,
    service: SubscriptionService,
    billing: BillingService,
) -> None:
    created = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="TRIAL", auto_renew=True))

    assert created.fee == Decimal("0")
    assert created.auto_renew is False
    assert created.trial_ends_at is not None
    assert billing.list_invoices(db_session, _ctx()) == []


def test_trial_rejects_addons(db_session: Session, service: SubscriptionService) -> None:
    with pytest.raises(HTTPException) as exc_info:
        service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="TRIAL", extra_branches=1))

    assert exc_info.value.status_code == 400


def test_future_start_date_creates_future_subscription(db_session: Session, service: SubscriptionService) -> None:
    created = service.create_subscription(
        db_session,
        _ctx(),
        SubscriptionCreate(plan_id="STD_M", start_date=NOW + timedelta(days=5)),
    )

    assert created.status == "FUTURE"


def test_manual_renewal_queues_future_period_once(
    db_session: Session,
    service: SubscriptionService,
    billing: BillingService,
) -> None:
    current = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="STD_M"))

    renewal = service.renew_subscription(db_session, _ctx(), current.id)

    assert renewal.status == "FUTURE"
    assert renewal.previous_subscription_id == current.id
    assert ensure_utc(renewal.start_date) == ensure_utc(current.end_date)
    assert service.get_subscription(db_session, _ctx(), current.id).status == "ACTIVE"

    renewal_invoices = billing.list_invoices(db_session, _ctx(), subscription_id=renewal.id)
    assert [invoice.invoice_type for invoice in renewal_invoices] == ["RENEWAL"]

    with pytest.raises(HTTPException) as exc_info:
        service.renew_subscription(db_session, _ctx(), current.id)
    assert exc_info.value.status_code == 409


def test_lapsed_subscription_renews_immediately(db_session: Session, service: SubscriptionService) -> None:
    lapsed = service.create_subscription(
        db_session,
        _ctx(),
        SubscriptionCreate(plan_id="STD_M", start_date=NOW - timedelta(days=40), auto_renew=False),
    )

    renewal = service.renew_subscription(db_session, _ctx(), lapsed.id)

    assert renewal.status == "ACTIVE"
    assert ensure_utc(renewal.start_date) == NOW
    assert service.get_subscription(db_session, _ctx(), lapsed.id).status == "EXPIRED"


def test_trial_must_convert_to_paid_plan_on_renewal(db_session: Session, service: SubscriptionService) -> None:
    trial = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="TRIAL"))

    with pytest.raises(HTTPException) as exc_info:
        service.renew_subscription(db_session, _ctx(), trial.id)
    assert exc_info.value.status_code == 400

    converted = service.renew_subscription(db_session, _ctx(), trial.id, SubscriptionRenew(plan_id="STD_Y", extra_users=1))
    assert converted.plan_id == "STD_Y"
    assert converted.billing_cycle == "YEARLY"
    assert converted.included_users_snapshot == 5
    assert converted.fee == Decimal("400")


def test_cancel_is_scheduled_for_period_end(db_session: Session, service: SubscriptionService, clock: FixedClock) -> None:
    created = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="STD_M"))

    cancelled = service.cancel_subscription(db_session, _ctx(), created.id, "moving to another vendor")
    assert cancelled.status == "ACTIVE"
    assert cancelled.cancel_at_period_end is True
    assert cancelled.auto_renew is False

    assert service.process_scheduled_cancellations(db_session, NOW + timedelta(days=10)) == 0
    assert service.process_scheduled_cancellations(db_session, NOW + timedelta(days=30)) == 1

    final = service.get_subscription(db_session, _ctx(), created.id)
    assert final.status == "CANCELLED"
    assert final.canceled_at is not None

    with pytest.raises(HTTPException) as exc_info:
        service.toggle_auto_renew(db_session, _ctx(), created.id, True)
    assert exc_info.value.status_code == 409


def test_mid_cycle_upgrade_bills_prorated_capacity(
    db_session: Session,
    service: SubscriptionService,
    billing: BillingService,
    clock: FixedClock,
) -> None:
    created = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="STD_M"))
    clock.advance(days=10)

    updated = service.update_subscription(db_session, _ctx(), created.id, SubscriptionUpdate(extra_users=2))

    assert updated.fee == Decimal("55")
    assert updated.max_users == 6
    upgrades = [
        invoice
        for invoice in billing.list_invoices(db_session, _ctx(), subscription_id=created.id)
        if invoice.invoice_type == "UPGRADE"
    ]
    assert len(upgrades) == 1
    assert upgrades[0].items[0].unit_price == Decimal("6.67")
    assert upgrades[0].total_amount == Decimal("13.34")


def test_bonus_change_does_not_invoice(db_session: Session, service: SubscriptionService, billing: BillingService) -> None:
    created = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="STD_M"))

    updated = service.update_subscription(db_session, _ctx(), created.id, SubscriptionUpdate(bonus_branches=2))

    assert updated.max_branches == 3
    assert updated.fee == Decimal("35")
    assert len(billing.list_invoices(db_session, _ctx(), subscription_id=created.id)) == 1


def test_trial_cannot_enable_auto_renew(db_session: Session, service: SubscriptionService) -> None:
    trial = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="TRIAL"))

    with pytest.raises(HTTPException) as exc_info:
        service.toggle_auto_renew(db_session, _ctx(), trial.id, True)

    assert exc_info.value.status_code == 400


def test_other_tenant_cannot_read_or_delete(db_session: Session, service: SubscriptionService) -> None:
    created = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="STD_M"))

    with pytest.raises(HTTPException) as exc_info:
        service.get_subscription(db_session, _ctx("tenant-b"), created.id)
    assert exc_info.value.status_code == 404

    service.delete_subscription(db_session, _ctx(), created.id)
    with pytest.raises(HTTPException) as deleted_info:
        service.get_subscription(db_session, _ctx(), created.id)
    assert deleted_info.value.status_code == 404


def test_active_subscription_lookup(db_session: Session, service: SubscriptionService) -> None:
    with pytest.raises(HTTPException):
        service.get_active_subscription(db_session, _ctx())

    created = service.create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="STD_M"))

    assert service.get_active_subscription(db_session, _ctx()).id == created.id
