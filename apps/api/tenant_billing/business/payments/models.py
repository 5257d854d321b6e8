from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenant_billing.core.database import Base
from tenant_billing.platform.clock import utcnow


class Payment(Base):
    __tablename__ = "payments_payment"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    base_exchange_rate: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    final_exchange_rate: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    amount_in_functional_currency: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    functional_currency: Mapped[str] = mapped_column(String(16), nullable=False)
    refunded_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"), server_default="0")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="COMPLETED", server_default="COMPLETED")
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    allocations: Mapped[list[PaymentAllocation]] = relationship(
        "tenant_billing.business.payments.models.PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    cheque_detail: Mapped[ChequeDetail | None] = relationship(
        "tenant_billing.business.payments.models.ChequeDetail",
        back_populates="payment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    refunds: Mapped[list[PaymentRefund]] = relationship(
        "tenant_billing.business.payments.models.PaymentRefund",
        back_populates="payment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PaymentRefund.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_payments_payment_tenant_status", "tenant_id", "status"),
        Index("ix_payments_payment_date", "payment_date"),
    )

    @property
    def allocated_amount(self) -> Decimal:
        return sum((Decimal(item.amount) for item in self.allocations), start=Decimal("0"))

    @property
    def unallocated_amount(self) -> Decimal:
        return Decimal(self.amount) - Decimal(self.refunded_amount) - self.allocated_amount


class PaymentAllocation(Base):
    __tablename__ = "payments_allocation"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payments_payment.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("billing_invoice.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    payment: Mapped[Payment] = relationship("tenant_billing.business.payments.models.Payment", back_populates="allocations")

    __table_args__ = (
        UniqueConstraint("payment_id", "invoice_id", name="uq_payments_allocation_payment_invoice"),
        Index("ix_payments_allocation_invoice", "invoice_id"),
    )


class ChequeDetail(Base):
    __tablename__ = "payments_cheque_detail"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payments_payment.id", ondelete="CASCADE"),
        nullable=False,
    )
    cheque_number: Mapped[str] = mapped_column(String(64), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING", server_default="PENDING")
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment: Mapped[Payment] = relationship("tenant_billing.business.payments.models.Payment", back_populates="cheque_detail")

    __table_args__ = (UniqueConstraint("payment_id", name="uq_payments_cheque_detail_payment"),)


class PaymentRefund(Base):
    __tablename__ = "payments_refund"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payments_payment.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    payment: Mapped[Payment] = relationship("tenant_billing.business.payments.models.Payment", back_populates="refunds")

    __table_args__ = (Index("ix_payments_refund_payment", "payment_id"),)
