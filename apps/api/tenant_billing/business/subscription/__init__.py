from tenant_billing.business.subscription.models import Subscription
from tenant_billing.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionRenew,
    SubscriptionUpdate,
)
from tenant_billing.business.subscription.service import SubscriptionService, subscription_service

__all__ = [
    "Subscription",
    "SubscriptionCreate",
    "SubscriptionRead",
    "SubscriptionRenew",
    "SubscriptionUpdate",
    "SubscriptionService",
    "subscription_service",
]
