from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing import audit
from tenant_billing.business.tenants.schemas import TenantBillingProfileUpsert
from tenant_billing.business.tenants.service import TenantProfileService
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


@pytest.fixture(autouse=True)
def reset_audit() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    yield
    audit.audit_entries.clear()


def _ctx(tenant_id: str | None = "tenant-a", *, super_admin: bool = False) -> TenantContext:
    return TenantContext(user_id="profile-user", tenant_id=tenant_id, is_super_admin=super_admin)


def test_upsert_creates_then_updates(db_session: Session) -> None:
    service = TenantProfileService()

    created = service.upsert_profile(db_session, _ctx(), "tenant-a", TenantBillingProfileUpsert(legal_name="Lakeside Dental"))
    updated = service.upsert_profile(
        db_session,
        _ctx(),
        "tenant-a",
        TenantBillingProfileUpsert(legal_name="Lakeside Dental Group", functional_currency="eur", markup_type="PERCENTAGE", markup_value=Decimal("1.5")),
    )

    assert updated.id == created.id
    assert updated.legal_name == "Lakeside Dental Group"
    assert updated.functional_currency == "EUR"
    assert updated.markup_value == Decimal("1.5")
    assert [entry["action"] for entry in audit.audit_entries] == ["upsert", "upsert"]
    assert audit.audit_entries[0]["before"] is None
    assert audit.audit_entries[1]["before"]["legal_name"] == "Lakeside Dental"
    assert {"legal_name", "functional_currency", "markup_type", "markup_value"} <= set(audit.audit_entries[1]["changed_fields"])


def test_profile_access_is_bound_to_tenant(db_session: Session) -> None:
    service = TenantProfileService()

    with pytest.raises(HTTPException) as missing:
        service.get_profile(db_session, _ctx(), "tenant-a")
    assert missing.value.status_code == 404

    with pytest.raises(HTTPException) as foreign:
        service.upsert_profile(db_session, _ctx(), "tenant-b", TenantBillingProfileUpsert(legal_name="Other Clinic"))
    assert foreign.value.status_code == 400

    admin_written = service.upsert_profile(
        db_session,
        _ctx(None, super_admin=True),
        "tenant-b",
        TenantBillingProfileUpsert(legal_name="Other Clinic"),
    )
    assert admin_written.tenant_id == "tenant-b"
