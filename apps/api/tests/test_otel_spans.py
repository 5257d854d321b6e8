from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing.business.billing.schemas import GenerateInvoiceRequest, InvoiceItemCreate
from tenant_billing.business.billing.service import BillingService
from tenant_billing.core.database import Base
from tenant_billing.otel import setup_inmemory_otel
from tenant_billing.platform.clock import FixedClock
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


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("tenant-billing-api")
    exporter.clear()
    return exporter


def test_overdue_job_emits_span_with_counts(db_session: Session, span_exporter: InMemorySpanExporter) -> None:
    billing = BillingService(clock=FixedClock(NOW))
    billing.generate_invoice(
        db_session,
        TenantContext(user_id="span-user", tenant_id="tenant-a"),
        GenerateInvoiceRequest(
            currency="USD",
            items=[InvoiceItemCreate(description="Standard Monthly", quantity=Decimal("1"), unit_price=Decimal("35"))],
        ),
    )

    billing.mark_overdue_invoices(db_session, NOW + timedelta(days=30))

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "billing.mark_overdue_invoices"]
    assert len(spans) == 1
    assert spans[0].attributes["transitioned"] == 1
    assert spans[0].attributes["failed"] == 0
