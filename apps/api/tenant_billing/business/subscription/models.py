from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tenant_billing.core.database import Base
from tenant_billing.platform.clock import utcnow


class Subscription(Base):
    __tablename__ = "subscription"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    plan_id: Mapped[str] = mapped_column(String(32), nullable=False)
    billing_cycle: Mapped[str] = mapped_column(String(16), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    fee: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    billing_cycle_anchor: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE", server_default="ACTIVE")
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    included_branches_snapshot: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    purchased_branches: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    bonus_branches: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    included_users_snapshot: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    purchased_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    bonus_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    grace_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7, server_default="7")
    previous_subscription_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("previous_subscription_id", name="uq_subscription_previous"),
        Index("ix_subscription_tenant_status", "tenant_id", "status"),
        Index("ix_subscription_status_end", "status", "end_date"),
    )

    @property
    def max_branches(self) -> int:
        return self.included_branches_snapshot + self.purchased_branches + self.bonus_branches

    @property
    def max_users(self) -> int:
        return self.included_users_snapshot + self.purchased_users + self.bonus_users
