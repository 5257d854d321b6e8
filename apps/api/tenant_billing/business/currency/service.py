from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from tenant_billing.business.currency.models import ExchangeRate
from tenant_billing.business.currency.repository import ExchangeRateRepository
from tenant_billing.business.currency.schemas import ExchangeRateCreate, ExchangeRateRead, ResolvedRateRead
from tenant_billing.core.config import get_settings
from tenant_billing.platform.clock import utcnow
from tenant_billing.platform.errors import RateNotFound, ValidationError
from tenant_billing.platform.tenancy import TenantContext


logger = logging.getLogger("tenant_billing.currency")

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def apply_markup(base_rate: Decimal, markup_type: str | None, markup_value: Decimal | None) -> Decimal:
    """Return the tenant-facing rate for ``base_rate``; only a positive percentage markup changes it."""

    if (markup_type or "NONE").upper() != "PERCENTAGE" or markup_value is None:
        return Decimal(base_rate)
    value = Decimal(markup_value)
    if value <= 0:
        return Decimal(base_rate)
    return Decimal(base_rate) + Decimal(base_rate) * value / _HUNDRED


@dataclass(slots=True)
class CurrencyResolver:
    rate_repository: ExchangeRateRepository = ExchangeRateRepository()
    system_base_currency: str | None = None

    def get_rate(self, session: Session, base_currency: str, target_currency: str) -> Decimal:
        base = base_currency.strip().upper()
        target = target_currency.strip().upper()
        if base == target:
            return _ONE

        direct = self.rate_repository.latest_rate(session, base, target)
        if direct is not None:
            return direct

        inverse = self.rate_repository.latest_rate(session, target, base)
        if inverse is not None and inverse > 0:
            return _ONE / inverse

        pivot = (self.system_base_currency or get_settings().system_base_currency).upper()
        if pivot not in {base, target}:
            pivot_to_base = self.rate_repository.latest_rate(session, pivot, base)
            pivot_to_target = self.rate_repository.latest_rate(session, pivot, target)
            if pivot_to_base is not None and pivot_to_target is not None and pivot_to_base > 0:
                return pivot_to_target / pivot_to_base

        logger.warning("exchange_rate_not_found", extra={"error": f"{base}->{target}"})
        raise RateNotFound(base, target)

    def resolve(self, session: Session, base_currency: str, target_currency: str) -> ResolvedRateRead:
        rate = self.get_rate(session, base_currency, target_currency)
        return ResolvedRateRead(
            base_currency=base_currency.upper(),
            target_currency=target_currency.upper(),
            rate=rate,
        )

    def record_rate(self, session: Session, ctx: TenantContext, payload: ExchangeRateCreate) -> ExchangeRateRead:
        base = payload.base_currency.strip().upper()
        target = payload.target_currency.strip().upper()
        if base == target:
            raise ValidationError("base and target currency must differ", field="target_currency")

        row = ExchangeRate(
            base_currency=base,
            target_currency=target,
            rate=payload.rate,
            source=payload.source or ctx.user_id,
            last_updated=payload.last_updated or utcnow(),
        )
        session.add(row)
        session.commit()
        session.refresh(row)
        return ExchangeRateRead.model_validate(row)

    def list_rates(self, session: Session) -> list[ExchangeRateRead]:
        return [ExchangeRateRead.model_validate(row) for row in self.rate_repository.latest_rows(session)]


currency_resolver = CurrencyResolver()
