from __future__ import annotations

import uuid
from collections.abc import Callable
from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel
from sqlalchemy.orm import Session

from tenant_billing.business.billing.repository import InvoiceRepository
from tenant_billing.business.payments.repository import PaymentRepository
from tenant_billing.business.subscription.repository import SubscriptionRepository
from tenant_billing.platform.errors import NotFoundError
from tenant_billing.platform.tenancy import TenantContext


class ResourceKind(str, Enum):
    SUBSCRIPTION = "subscription"
    INVOICE = "invoice"
    PAYMENT = "payment"


class ResourceOwnerRead(BaseModel):
    kind: ResourceKind
    id: uuid.UUID
    tenant_id: str


ResourceLoader = Callable[[Session, TenantContext, uuid.UUID], str | None]


def _loader(repository: SubscriptionRepository | InvoiceRepository | PaymentRepository) -> ResourceLoader:
    def load(session: Session, ctx: TenantContext, resource_id: uuid.UUID) -> str | None:
        row = repository.get_scoped(session, ctx, resource_id)
        return row.tenant_id if row is not None else None

    return load


RESOURCE_LOADERS: MappingProxyType[ResourceKind, ResourceLoader] = MappingProxyType(
    {
        ResourceKind.SUBSCRIPTION: _loader(SubscriptionRepository()),
        ResourceKind.INVOICE: _loader(InvoiceRepository()),
        ResourceKind.PAYMENT: _loader(PaymentRepository()),
    }
)


def load_resource_owner(session: Session, ctx: TenantContext, kind: ResourceKind, resource_id: uuid.UUID) -> ResourceOwnerRead:
    """Resolve the owning tenant of a billing resource for an external authorization layer."""

    tenant_id = RESOURCE_LOADERS[kind](session, ctx, resource_id)
    if tenant_id is None:
        raise NotFoundError(f"{kind.value} not found")
    return ResourceOwnerRead(kind=kind, id=resource_id, tenant_id=tenant_id)
