from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from tenant_billing.business.subscription.models import Subscription
from tenant_billing.platform.tenancy.repository import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    resource = "subscription.subscription"
    model = Subscription

    def get_renewal_of(self, session: Session, subscription_id: uuid.UUID) -> Subscription | None:
        return session.scalar(select(Subscription).where(Subscription.previous_subscription_id == subscription_id))

    def get_active_for_tenant(self, session: Session, tenant_id: str) -> Subscription | None:
        return session.scalar(
            select(Subscription)
            .where(
                Subscription.tenant_id == tenant_id,
                Subscription.status == "ACTIVE",
                Subscription.is_deleted.is_(False),
            )
            .order_by(Subscription.end_date.desc())
            .limit(1)
        )
