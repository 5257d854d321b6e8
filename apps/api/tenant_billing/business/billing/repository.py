from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_billing.business.billing.models import Invoice
from tenant_billing.platform.tenancy.repository import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):
    resource = "billing.invoice"
    model = Invoice

    def get_by_idempotency_key(self, session: Session, idempotency_key: str) -> Invoice | None:
        return session.scalar(select(Invoice).where(Invoice.idempotency_key == idempotency_key))

    def highest_number_for(self, session: Session, prefix: str) -> str | None:
        return session.scalar(
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(Invoice.invoice_number.desc())
            .limit(1)
        )
