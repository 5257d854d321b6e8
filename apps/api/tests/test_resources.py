from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal
import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing.business.billing.schemas import GenerateInvoiceRequest, InvoiceItemCreate
from tenant_billing.business.billing.service import BillingService
from tenant_billing.business.payments.schemas import PaymentCreate
from tenant_billing.business.payments.service import PaymentService
from tenant_billing.business.resources.service import ResourceKind, load_resource_owner
from tenant_billing.business.subscription.schemas import SubscriptionCreate
from tenant_billing.business.subscription.service import SubscriptionService
from tenant_billing.core.database import Base
from tenant_billing.platform.tenancy import TenantContext, system_context


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


def _ctx(tenant_id: str = "tenant-a") -> TenantContext:
    return TenantContext(user_id="resource-user", tenant_id=tenant_id)


def test_each_resource_kind_resolves_its_tenant(db_session: Session) -> None:
    subscription = SubscriptionService().create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="TRIAL"))
    invoice = BillingService().generate_invoice(
        db_session,
        _ctx(),
        GenerateInvoiceRequest(
            currency="USD",
            items=[InvoiceItemCreate(description="Setup", quantity=Decimal("1"), unit_price=Decimal("10"))],
        ),
    )
    payment = PaymentService().create_payment(db_session, _ctx(), PaymentCreate(amount=Decimal("10"), currency="USD", method="CASH"))

    for kind, resource_id in (
        (ResourceKind.SUBSCRIPTION, subscription.id),
        (ResourceKind.INVOICE, invoice.id),
        (ResourceKind.PAYMENT, payment.id),
    ):
        owner = load_resource_owner(db_session, _ctx(), kind, resource_id)
        assert owner.tenant_id == "tenant-a"
        assert owner.kind is kind

    assert load_resource_owner(db_session, system_context(), ResourceKind.PAYMENT, payment.id).tenant_id == "tenant-a"


def test_foreign_or_missing_resources_are_not_found(db_session: Session) -> None:
    subscription = SubscriptionService().create_subscription(db_session, _ctx(), SubscriptionCreate(plan_id="TRIAL"))

    with pytest.raises(HTTPException) as foreign:
        load_resource_owner(db_session, _ctx("tenant-b"), ResourceKind.SUBSCRIPTION, subscription.id)
    assert foreign.value.status_code == 404

    with pytest.raises(HTTPException) as missing:
        load_resource_owner(db_session, _ctx(), ResourceKind.INVOICE, uuid.uuid4())
    assert missing.value.status_code == 404
