from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing.business.currency.models import ExchangeRate
from tenant_billing.business.currency.schemas import ExchangeRateCreate
from tenant_billing.business.currency.service import CurrencyResolver, apply_markup
from tenant_billing.core.database import Base
from tenant_billing.platform.tenancy import TenantContext


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


def _rate(session: Session, base: str, target: str, rate: str, *, age_days: int = 0) -> None:
    session.add(
        ExchangeRate(
            base_currency=base,
            target_currency=target,
            rate=Decimal(rate),
            source="test-feed",
            last_updated=datetime(2026, 10, 1, tzinfo=timezone.utc) - timedelta(days=age_days),
        )
    )
    session.commit()


def test_apply_markup_only_changes_positive_percentage() -> None:
    assert apply_markup(Decimal("2"), "PERCENTAGE", Decimal("5")) == Decimal("2.1")
    assert apply_markup(Decimal("2"), "NONE", Decimal("5")) == Decimal("2")
    assert apply_markup(Decimal("2"), "PERCENTAGE", Decimal("0")) == Decimal("2")
    assert apply_markup(Decimal("2"), None, None) == Decimal("2")


def test_same_currency_is_identity(db_session: Session) -> None:
    assert CurrencyResolver().get_rate(db_session, "usd", "USD") == Decimal("1")


def test_direct_rate_uses_latest_observation(db_session: Session) -> None:
    _rate(db_session, "USD", "EUR", "0.80", age_days=3)
    _rate(db_session, "USD", "EUR", "0.92")

    assert CurrencyResolver().get_rate(db_session, "USD", "EUR") == Decimal("0.92")


def test_inverse_rate_is_derived(db_session: Session) -> None:
    _rate(db_session, "EUR", "USD", "1.25")

    assert CurrencyResolver().get_rate(db_session, "USD", "EUR") == Decimal("0.8")


def test_cross_rate_goes_through_system_base_currency(db_session: Session) -> None:
    _rate(db_session, "GBP", "USD", "1.0")
    _rate(db_session, "GBP", "EUR", "0.9")

    resolver = CurrencyResolver(system_base_currency="GBP")

    assert resolver.get_rate(db_session, "USD", "EUR") == Decimal("0.9")


def test_missing_rate_raises_rate_not_found(db_session: Session) -> None:
    with pytest.raises(HTTPException) as exc_info:
        CurrencyResolver().get_rate(db_session, "USD", "JPY")

    assert exc_info.value.status_code == 422
    assert exc_info.value.code == "EXCHANGE_RATE_NOT_FOUND"


def test_record_rate_normalizes_and_rejects_identical_pair(db_session: Session) -> None:
    resolver = CurrencyResolver()
    ctx = TenantContext(user_id="rates-feed", is_super_admin=True)

    recorded = resolver.record_rate(db_session, ctx, ExchangeRateCreate(base_currency="usd", target_currency="lkr", rate=Decimal("300.5")))
    assert recorded.base_currency == "USD"
    assert recorded.target_currency == "LKR"
    assert recorded.source == "rates-feed"
    assert resolver.get_rate(db_session, "USD", "LKR") == Decimal("300.5")

    with pytest.raises(HTTPException) as exc_info:
        resolver.record_rate(db_session, ctx, ExchangeRateCreate(base_currency="USD", target_currency="usd", rate=Decimal("1")))
    assert exc_info.value.status_code == 400
