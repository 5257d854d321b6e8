from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from tenant_billing.context import reset_correlation_id, reset_job_name, set_correlation_id, set_job_name
from tenant_billing.logging import CorrelationIdFilter, JsonLogFormatter
from tenant_billing.main import app


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


def test_json_formatter_carries_context_and_known_fields() -> None:
    correlation_token = set_correlation_id("corr-log-1")
    job_token = set_job_name("billing.mark_overdue_invoices")
    try:
        record = logging.getLogger("tenant_billing.test").makeRecord(
            "tenant_billing.test",
            logging.INFO,
            __file__,
            10,
            "invoice.overdue",
            (),
            None,
            extra={"tenant_id": "tenant-a", "invoice_id": "inv-1", "card_number": "4111"},
        )
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        reset_job_name(job_token)
        reset_correlation_id(correlation_token)

    assert payload["msg"] == "invoice.overdue"
    assert payload["correlation_id"] == "corr-log-1"
    assert payload["fields"]["job_name"] == "billing.mark_overdue_invoices"
    assert payload["fields"]["tenant_id"] == "tenant-a"
    assert "card_number" not in payload["fields"]


def test_error_field_is_truncated() -> None:
    record = logging.makeLogRecord({"name": "tenant_billing.test", "msg": "job.candidate_failed", "error": "x" * 900})

    payload = json.loads(JsonLogFormatter().format(record))

    assert len(payload["fields"]["error"]) == 500


def test_request_log_includes_correlation_and_tenant(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="tenant_billing.request")

    response = client.get("/plans", headers={"X-Correlation-Id": "corr-log-2", "x-tenant-id": "tenant-a"})
    assert response.status_code == 200

    records = [record for record in caplog.records if record.name == "tenant_billing.request" and record.getMessage() == "http.request"]
    assert records
    record = records[-1]
    assert getattr(record, "correlation_id", None) == "corr-log-2"
    assert getattr(record, "tenant_id", None) == "tenant-a"
    assert getattr(record, "path", None) == "/plans"
    assert getattr(record, "status_code", None) == 200


def test_client_errors_are_logged_as_warnings(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="tenant_billing.request")

    client.get("/plans/unknown")

    records = [record for record in caplog.records if record.name == "tenant_billing.request"]
    assert records[-1].levelno == logging.WARNING
    assert getattr(records[-1], "path", None) == "/plans/{id}"
