from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_billing.business.payments.models import Payment, PaymentAllocation
from tenant_billing.platform.tenancy.repository import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    resource = "payments.payment"
    model = Payment


class AllocationRepository(BaseRepository[PaymentAllocation]):
    resource = "payments.allocation"
    model = PaymentAllocation

    def list_for_payment(self, session: Session, payment_id: uuid.UUID) -> list[PaymentAllocation]:
        return list(
            session.scalars(
                select(PaymentAllocation)
                .where(PaymentAllocation.payment_id == payment_id)
                .order_by(PaymentAllocation.created_at, PaymentAllocation.id)
            ).all()
        )
