from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import false, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.interfaces import ORMOption
from sqlalchemy.sql import Select

from tenant_billing.platform.errors import ValidationError
from tenant_billing.platform.tenancy.context import TenantContext


ModelT = TypeVar("ModelT")


def apply_tenant_filter(query: Select[Any], ctx: TenantContext) -> Select[Any]:
    """Restrict a query to the caller's tenant for every selected entity exposing ``tenant_id``."""

    if ctx.is_super_admin:
        return query
    if not ctx.tenant_id:
        return query.where(false())

    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None:
            continue
        if hasattr(model, "tenant_id"):
            query = query.where(getattr(model, "tenant_id") == ctx.tenant_id)
    return query


def resolve_tenant_id(ctx: TenantContext, requested: str | None) -> str:
    if ctx.is_super_admin:
        tenant_id = requested or ctx.tenant_id
        if not tenant_id:
            raise ValidationError("tenant_id is required", field="tenant_id")
        return tenant_id

    if not ctx.tenant_id:
        raise ValidationError("tenant context is missing", field="tenant_id")
    if requested is not None and requested != ctx.tenant_id:
        raise ValidationError("tenant_id does not match the current tenant", field="tenant_id")
    return ctx.tenant_id


class BaseRepository(Generic[ModelT]):
    resource = ""
    model: type[ModelT]

    def apply_scope_query(self, query: Select[Any], ctx: TenantContext) -> Select[Any]:
        return apply_tenant_filter(query, ctx)

    def get_scoped(
        self,
        session: Session,
        ctx: TenantContext,
        record_id: uuid.UUID,
        *,
        options: Sequence[ORMOption] = (),
        for_update: bool = False,
    ) -> ModelT | None:
        stmt = select(self.model).where(getattr(self.model, "id") == record_id)
        if options:
            stmt = stmt.options(*options)
        if hasattr(self.model, "is_deleted"):
            stmt = stmt.where(getattr(self.model, "is_deleted").is_(False))
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalar(self.apply_scope_query(stmt, ctx))
