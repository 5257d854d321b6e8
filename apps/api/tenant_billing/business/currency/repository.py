from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_billing.business.currency.models import ExchangeRate


class ExchangeRateRepository:
    resource = "currency.exchange_rate"

    def latest_rate(self, session: Session, base_currency: str, target_currency: str) -> Decimal | None:
        rate = session.scalar(
            select(ExchangeRate.rate)
            .where(
                ExchangeRate.base_currency == base_currency,
                ExchangeRate.target_currency == target_currency,
            )
            .order_by(ExchangeRate.last_updated.desc())
            .limit(1)
        )
        return Decimal(rate) if rate is not None else None

    def latest_rows(self, session: Session) -> list[ExchangeRate]:
        rows = session.scalars(
            select(ExchangeRate).order_by(
                ExchangeRate.base_currency.asc(),
                ExchangeRate.target_currency.asc(),
                ExchangeRate.last_updated.desc(),
            )
        ).all()
        latest: dict[tuple[str, str], ExchangeRate] = {}
        for row in rows:
            latest.setdefault((row.base_currency, row.target_currency), row)
        return list(latest.values())
