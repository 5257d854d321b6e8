from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_billing import audit, events
from tenant_billing.core.auth import AuthUser, get_current_user
from tenant_billing.core.database import Base, get_db
from tenant_billing.main import app


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
def current_user() -> AuthUser:
    return AuthUser(sub="clinic-admin", roles=["user"], tenant_id="tenant-a")


@pytest.fixture()
def client(db_session: Session, current_user: AuthUser) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return current_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    events.published_events.clear()
    audit.audit_entries.clear()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    events.published_events.clear()
    audit.audit_entries.clear()


def test_health_and_me(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    me = client.get("/me")
    assert me.status_code == 200
    assert me.json() == {"sub": "clinic-admin", "roles": ["user"], "tenant_id": "tenant-a"}


def test_subscribe_invoice_and_pay_flow(client: TestClient) -> None:
    profile = client.put(
        "/tenants/tenant-a/billing-profile",
        json={"legal_name": "Lakeside Dental", "functional_currency": "USD"},
    )
    assert profile.status_code == 200

    subscription = client.post("/subscriptions", json={"plan_id": "STD_M", "extra_branches": 1, "extra_users": 2})
    assert subscription.status_code == 201
    body = subscription.json()
    assert Decimal(body["fee"]) == Decimal("75")
    assert body["max_branches"] == 2
    assert body["tenant_id"] == "tenant-a"

    invoices = client.get("/billing/invoices", params={"subscription_id": body["id"]})
    assert invoices.status_code == 200
    assert len(invoices.json()) == 1
    invoice = invoices.json()[0]
    assert invoice["billed_to_name"] == "Lakeside Dental"
    assert Decimal(invoice["total_amount"]) == Decimal("75")

    payment = client.post(
        "/payments",
        json={
            "amount": "100",
            "currency": "USD",
            "method": "CASH",
            "allocations": [{"invoice_id": invoice["id"], "amount": "75"}],
        },
    )
    assert payment.status_code == 201
    assert Decimal(payment.json()["unallocated_amount"]) == Decimal("25")

    paid = client.get(f"/billing/invoices/{invoice['id']}")
    assert paid.json()["status"] == "PAID"

    void = client.post(f"/billing/invoices/{invoice['id']}/void", json={"reason": "mistake"})
    assert void.status_code == 422
    assert void.json()["code"] == "INVARIANT_VIOLATION"

    outstanding = client.get("/billing/invoices/outstanding")
    assert outstanding.status_code == 200
    assert outstanding.json() == []

    allocations = client.get(f"/payments/{payment.json()['id']}/allocations")
    assert allocations.status_code == 200
    assert allocations.json()[0]["invoice_id"] == invoice["id"]


def test_manual_invoice_validation_and_idempotency(client: TestClient) -> None:
    request = {
        "currency": "USD",
        "tax_rate": "0.1",
        "idempotency_key": "manual-setup-fee",
        "items": [{"description": "Onboarding", "quantity": "1", "unit_price": "75"}],
    }
    first = client.post("/billing/invoices", json=request)
    second = client.post("/billing/invoices", json=request)

    assert first.status_code == 201
    assert Decimal(first.json()["total_amount"]) == Decimal("82.5")
    assert second.json()["id"] == first.json()["id"]

    empty = client.post("/billing/invoices", json={"currency": "USD", "items": []})
    assert empty.status_code == 422


def test_cross_tenant_access_is_hidden(client: TestClient, current_user: AuthUser) -> None:
    subscription = client.post("/subscriptions", json={"plan_id": "STD_M"})
    subscription_id = subscription.json()["id"]

    owner = client.get(f"/resources/subscription/{subscription_id}")
    assert owner.status_code == 200
    assert owner.json() == {"kind": "subscription", "id": subscription_id, "tenant_id": "tenant-a"}

    current_user.tenant_id = "tenant-b"
    hidden = client.get(f"/subscriptions/{subscription_id}", headers={"x-tenant-id": "tenant-a"})
    assert hidden.status_code == 404
    assert hidden.json()["code"] == "NOT_FOUND"
    assert client.get(f"/resources/subscription/{subscription_id}").status_code == 404


def test_job_and_rate_endpoints_require_permissions(client: TestClient, current_user: AuthUser) -> None:
    assert client.post("/subscriptions/jobs/lifecycle").status_code == 403
    assert client.post("/billing/jobs/mark-overdue").status_code == 403
    rate = {"base_currency": "USD", "target_currency": "EUR", "rate": "0.92"}
    assert client.post("/currency/rates", json=rate).status_code == 403

    current_user.roles = ["user", "billing.jobs.run", "billing.rates.write"]

    lifecycle = client.post("/subscriptions/jobs/lifecycle")
    assert lifecycle.status_code == 200
    assert lifecycle.json() == {"renewed": 0, "cancelled": 0, "expired": 0, "activated": 0}
    assert client.post("/billing/jobs/mark-overdue").json() == {"transitioned": 0}

    recorded = client.post("/currency/rates", json=rate)
    assert recorded.status_code == 201
    resolved = client.get("/currency/rates/resolve", params={"base": "EUR", "target": "USD"})
    assert resolved.status_code == 200
    assert Decimal(resolved.json()["rate"]) == Decimal("1") / Decimal("0.92")


def test_correlation_id_is_echoed(client: TestClient) -> None:
    response = client.get("/plans", headers={"X-Correlation-Id": "corr-smoke-1"})

    assert response.headers["x-correlation-id"] == "corr-smoke-1"

    generated = client.get("/plans", headers={"X-Correlation-Id": "bad id with spaces"})
    assert generated.headers["x-correlation-id"] != "bad id with spaces"


def test_metrics_endpoint_requires_permission_and_flag(client: TestClient, current_user: AuthUser) -> None:
    assert client.get("/metrics").status_code == 403

    current_user.roles = ["system.metrics.read"]
    assert client.get("/metrics").status_code == 404
