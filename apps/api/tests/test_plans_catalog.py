from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from tenant_billing.business.plans.catalog import get_plan, list_plans, require_plan
from tenant_billing.main import app


def test_standard_monthly_fee_includes_addons() -> None:
    plan = require_plan("STD_M")

    assert plan.fee_for(extra_branches=1, extra_users=2) == Decimal("75")
    assert plan.included_branches + 1 == 2
    assert plan.is_trial is False


def test_plan_lookup_is_case_insensitive_and_trims() -> None:
    assert get_plan(" std_y ") is require_plan("STD_Y")
    assert get_plan(None) is None
    assert get_plan("") is None


def test_unknown_plan_is_rejected() -> None:
    with pytest.raises(HTTPException) as exc_info:
        require_plan("GOLD")

    assert exc_info.value.status_code == 400
    assert exc_info.value.field == "plan_id"


def test_trial_plan_has_no_fee_and_no_addons() -> None:
    trial = require_plan("TRIAL")

    assert trial.is_trial is True
    assert trial.fee_for(0, 0) == Decimal("0")
    assert trial.allow_addons is False
    assert {plan.id for plan in list_plans()} == {"TRIAL", "STD_M", "STD_Y"}


def test_plans_endpoint_lists_catalog() -> None:
    with TestClient(app) as client:
        listing = client.get("/plans")
        assert listing.status_code == 200
        assert [item["id"] for item in listing.json()] == ["TRIAL", "STD_M", "STD_Y"]

        single = client.get("/plans/std_y")
        assert single.status_code == 200
        assert single.json()["billing_cycle"] == "YEARLY"

        missing = client.get("/plans/unknown")
        assert missing.status_code == 400
        assert missing.json()["code"] == "INVALID_ARGUMENT"
