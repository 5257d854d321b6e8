from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from tenant_billing import audit, events
from tenant_billing.business.billing.models import Invoice
from tenant_billing.business.billing.repository import InvoiceRepository
from tenant_billing.business.billing.service import OPEN_STATUSES, recompute_invoice_status
from tenant_billing.business.currency.service import CurrencyResolver, apply_markup
from tenant_billing.business.payments.models import ChequeDetail, Payment, PaymentAllocation, PaymentRefund
from tenant_billing.business.payments.repository import AllocationRepository, PaymentRepository
from tenant_billing.business.payments.schemas import (
    AllocationInput,
    BatchPaymentRead,
    BatchPaymentRequest,
    ChequeDetailCreate,
    ChequeDetailUpdate,
    PaymentAllocationRead,
    PaymentCreate,
    PaymentRead,
)
from tenant_billing.business.tenants.service import TenantProfileService
from tenant_billing.core.config import get_settings
from tenant_billing.core.events import InProcessEventBus, InternalEvent, event_bus
from tenant_billing.metrics import observe_allocation_conflict
from tenant_billing.platform.clock import Clock, SystemClock, ensure_utc, utcnow
from tenant_billing.platform.errors import ConflictError, InvariantViolation, NotFoundError, ValidationError
from tenant_billing.platform.tenancy import TenantContext, resolve_tenant_id, system_context


logger = logging.getLogger("tenant_billing.payments")

ALLOCATABLE_PAYMENT_STATUSES = frozenset({"PENDING", "COMPLETED"})
FAILED_CHEQUE_EVENTS = ("payments.cheque.bounced", "payments.cheque.cancelled")

_ZERO = Decimal("0")


@dataclass(slots=True)
class PaymentService:
    payment_repository: PaymentRepository = PaymentRepository()
    allocation_repository: AllocationRepository = AllocationRepository()
    invoice_repository: InvoiceRepository = InvoiceRepository()
    resolver: CurrencyResolver = field(default_factory=CurrencyResolver)
    profile_service: TenantProfileService = field(default_factory=TenantProfileService)
    clock: Clock = field(default_factory=SystemClock)

    def create_payment(self, session: Session, ctx: TenantContext, payload: PaymentCreate) -> PaymentRead:
        tenant_id = resolve_tenant_id(ctx, payload.tenant_id)
        payment = self._build_payment(
            session,
            ctx,
            tenant_id,
            amount=payload.amount,
            currency=payload.currency,
            method=payload.method,
            payment_date=payload.payment_date,
            notes=payload.notes,
            cheque=payload.cheque_detail,
        )
        session.add(payment)
        session.flush()

        allocated: list[tuple[uuid.UUID, Decimal]] = []
        for item in self._merge_allocations(payload.allocations):
            self._apply_allocation(session, ctx, payment, item.invoice_id, item.amount)
            allocated.append((item.invoice_id, self._q(item.amount)))
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info(
            "payment.created",
            extra={
                "payment_id": str(payment.id),
                "tenant_id": tenant_id,
                "amount": str(payment.amount),
                "status": payment.status,
            },
        )
        self._emit(
            "payment.created",
            payment,
            method=payment.method,
            amount_in_functional_currency=str(payment.amount_in_functional_currency),
            functional_currency=payment.functional_currency,
        )
        for invoice_id, amount in allocated:
            self._emit("payment.allocated", payment, invoice_id=str(invoice_id), amount=str(amount))
        self._audit(ctx, payment, "create", None, result)
        return result

    def allocate(
        self,
        session: Session,
        ctx: TenantContext,
        payment_id: uuid.UUID,
        invoice_id: uuid.UUID,
        amount: Decimal,
    ) -> PaymentRead:
        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        before = PaymentRead.model_validate(payment)
        invoice = self._apply_allocation(session, ctx, payment, invoice_id, amount)
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info(
            "payment.allocated",
            extra={"payment_id": str(payment.id), "invoice_id": str(invoice.id), "amount": str(amount)},
        )
        self._emit(
            "payment.allocated",
            payment,
            invoice_id=str(invoice.id),
            amount=str(self._q(amount)),
            invoice_status=invoice.status,
        )
        self._audit(ctx, payment, "allocate", before, result)
        return result

    def deallocate(
        self,
        session: Session,
        ctx: TenantContext,
        payment_id: uuid.UUID,
        invoice_id: uuid.UUID,
        amount: Decimal | None = None,
    ) -> PaymentRead:
        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        before = PaymentRead.model_validate(payment)
        released, invoice = self._release_allocation(session, ctx, payment, invoice_id, amount)
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info(
            "payment.deallocated",
            extra={"payment_id": str(payment.id), "invoice_id": str(invoice_id), "amount": str(released)},
        )
        self._emit(
            "payment.deallocated",
            payment,
            invoice_id=str(invoice_id),
            amount=str(released),
            invoice_status=invoice.status if invoice is not None else None,
        )
        self._audit(ctx, payment, "deallocate", before, result)
        return result

    def cancel_payment(self, session: Session, ctx: TenantContext, payment_id: uuid.UUID, reason: str) -> PaymentRead:
        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        before = PaymentRead.model_validate(payment)
        self._mark_failed(payment, ctx, reason)
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info("payment.cancelled", extra={"payment_id": str(payment.id), "tenant_id": payment.tenant_id})
        self._emit("payment.cancelled", payment, reason=payment.cancellation_reason)
        self._audit(ctx, payment, "cancel", before, result)
        return result

    def refund_payment(
        self,
        session: Session,
        ctx: TenantContext,
        payment_id: uuid.UUID,
        reason: str,
        amount: Decimal | None = None,
    ) -> PaymentRead:
        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        if payment.status != "COMPLETED":
            raise ConflictError(f"payment in status {payment.status} cannot be refunded")

        refundable = self._q(payment.unallocated_amount)
        refund_amount = self._q(amount) if amount is not None else refundable
        if refund_amount <= _ZERO:
            raise ValidationError("nothing to refund; deallocate the payment first", field="amount")
        if refund_amount > refundable:
            raise InvariantViolation(
                f"refund {refund_amount} exceeds the unallocated amount {refundable}; deallocate first",
            )

        before = PaymentRead.model_validate(payment)
        payment.refunded_amount = self._q(Decimal(payment.refunded_amount) + refund_amount)
        payment.refunds.append(PaymentRefund(amount=refund_amount, reason=reason.strip(), created_by=ctx.user_id))
        if self._q(payment.unallocated_amount) == _ZERO:
            payment.status = "REFUNDED"
        payment.updated_by = ctx.user_id
        session.add(payment)
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info(
            "payment.refunded",
            extra={"payment_id": str(payment.id), "amount": str(refund_amount), "status": payment.status},
        )
        self._emit("payment.refunded", payment, amount=str(refund_amount), reason=reason.strip())
        self._audit(ctx, payment, "refund", before, result)
        return result

    def update_cheque_status(
        self,
        session: Session,
        ctx: TenantContext,
        payment_id: uuid.UUID,
        status: str,
        note: str | None = None,
    ) -> PaymentRead:
        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        cheque = self._require_cheque(payment)
        if cheque.status != "PENDING":
            raise ConflictError(f"cheque is already {cheque.status}")
        if status not in {"CLEARED", "BOUNCED", "CANCELLED"}:
            raise ValidationError(f"invalid cheque status {status}", field="status")

        before = PaymentRead.model_validate(payment)
        cheque.status = status
        if note is not None:
            cheque.note = note
        if status == "CLEARED":
            cheque.cleared_at = self.clock.now()
            if payment.status == "PENDING":
                payment.status = "COMPLETED"
        payment.updated_by = ctx.user_id
        session.add(payment)
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info(
            "payments.cheque.status_changed",
            extra={"payment_id": str(payment.id), "status": status, "tenant_id": payment.tenant_id},
        )
        self._audit(ctx, payment, f"cheque_{status.lower()}", before, result)
        self._emit(
            f"payments.cheque.{status.lower()}",
            payment,
            cheque_number=cheque.cheque_number,
            actor_user_id=ctx.user_id,
        )
        return result

    def update_cheque_details(
        self,
        session: Session,
        ctx: TenantContext,
        payment_id: uuid.UUID,
        payload: ChequeDetailUpdate,
    ) -> PaymentRead:
        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        cheque = self._require_cheque(payment)
        if cheque.status != "PENDING":
            raise ConflictError("cheque details can only be edited while the cheque is PENDING")

        changes = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key in {"branch", "note"}
        }
        issue_date = changes.get("issue_date", cheque.issue_date)
        due_date = changes.get("due_date", cheque.due_date)
        if ensure_utc(due_date) < ensure_utc(issue_date):
            raise ValidationError("due_date must not be before issue_date", field="due_date")

        before = PaymentRead.model_validate(payment)
        for key, value in changes.items():
            setattr(cheque, key, value)
        payment.updated_by = ctx.user_id
        session.add(payment)
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        self._audit(ctx, payment, "cheque_update", before, result)
        return result

    def handle_failed_cheque(self, session: Session, ctx: TenantContext, payment_id: uuid.UUID) -> PaymentRead:
        """Reverse every allocation of a bounced or cancelled cheque and mark the payment failed."""

        payment = self._get_payment(session, ctx, payment_id, for_update=True)
        if payment.status == "FAILED":
            return PaymentRead.model_validate(payment)

        before = PaymentRead.model_validate(payment)
        cheque_status = payment.cheque_detail.status if payment.cheque_detail is not None else "FAILED"
        released: list[tuple[uuid.UUID, Decimal]] = []
        for allocation in list(payment.allocations):
            invoice_id = allocation.invoice_id
            amount, _ = self._release_allocation(session, ctx, payment, invoice_id, None)
            released.append((invoice_id, amount))
        self._mark_failed(payment, ctx, f"cheque {cheque_status.lower()}")
        self._commit(session)
        session.refresh(payment)

        result = PaymentRead.model_validate(payment)
        logger.info(
            "payments.cheque.reversed",
            extra={"payment_id": str(payment.id), "tenant_id": payment.tenant_id, "status": payment.status},
        )
        for invoice_id, amount in released:
            self._emit("payment.deallocated", payment, invoice_id=str(invoice_id), amount=str(amount))
        self._emit("payment.cancelled", payment, reason=payment.cancellation_reason)
        self._audit(ctx, payment, "cheque_reversal", before, result)
        return result

    def process_batch_payment(self, session: Session, ctx: TenantContext, payload: BatchPaymentRequest) -> BatchPaymentRead:
        tenant_id = resolve_tenant_id(ctx, payload.tenant_id)
        payments: list[Payment] = []
        allocations: list[tuple[Payment, uuid.UUID, Decimal]] = []
        allocated_total = _ZERO
        try:
            for item in payload.payments:
                payment = self._build_payment(
                    session,
                    ctx,
                    tenant_id,
                    amount=item.amount,
                    currency=payload.currency,
                    method=item.method,
                    payment_date=item.payment_date,
                    notes=item.notes,
                    cheque=item.cheque_detail,
                )
                session.add(payment)
                payments.append(payment)
            session.flush()

            # Each target takes only the requested amount; whatever the payments cannot cover stays open.
            for target in payload.invoices_to_pay:
                remaining = self._q(target.amount)
                for payment in payments:
                    if remaining <= _ZERO:
                        break
                    available = self._q(payment.unallocated_amount)
                    if available <= _ZERO:
                        continue
                    amount = min(available, remaining)
                    self._apply_allocation(session, ctx, payment, target.invoice_id, amount)
                    allocations.append((payment, target.invoice_id, amount))
                    allocated_total += amount
                    remaining -= amount
            self._commit(session)
        except Exception:
            session.rollback()
            logger.warning("payments.batch_failed", extra={"tenant_id": tenant_id})
            raise

        results: list[PaymentRead] = []
        for payment in payments:
            session.refresh(payment)
            result = PaymentRead.model_validate(payment)
            results.append(result)
            self._emit("payment.created", payment, method=payment.method, batch=True)
            self._audit(ctx, payment, "create", None, result)
        for payment, invoice_id, amount in allocations:
            self._emit("payment.allocated", payment, invoice_id=str(invoice_id), amount=str(amount), batch=True)

        logger.info(
            "payments.batch_processed",
            extra={"tenant_id": tenant_id, "amount": str(allocated_total)},
        )
        return BatchPaymentRead(payments=results, allocated_total=self._q(allocated_total))

    def get_payment(self, session: Session, ctx: TenantContext, payment_id: uuid.UUID) -> PaymentRead:
        return PaymentRead.model_validate(self._get_payment(session, ctx, payment_id))

    def list_payments(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        tenant_id: str | None = None,
        status: str | None = None,
        method: str | None = None,
    ) -> list[PaymentRead]:
        stmt = select(Payment).options(
            selectinload(Payment.allocations),
            selectinload(Payment.cheque_detail),
            selectinload(Payment.refunds),
        )
        if tenant_id is not None:
            stmt = stmt.where(Payment.tenant_id == resolve_tenant_id(ctx, tenant_id))
        if status is not None:
            stmt = stmt.where(Payment.status == status.upper())
        if method is not None:
            stmt = stmt.where(Payment.method == method.upper())
        stmt = self.payment_repository.apply_scope_query(stmt, ctx).order_by(Payment.payment_date.desc(), Payment.id)
        return [PaymentRead.model_validate(row) for row in session.scalars(stmt).all()]

    def list_allocations(self, session: Session, ctx: TenantContext, payment_id: uuid.UUID) -> list[PaymentAllocationRead]:
        payment = self._get_payment(session, ctx, payment_id)
        rows = self.allocation_repository.list_for_payment(session, payment.id)
        return [PaymentAllocationRead.model_validate(row) for row in rows]

    def _build_payment(
        self,
        session: Session,
        ctx: TenantContext,
        tenant_id: str,
        *,
        amount: Decimal,
        currency: str,
        method: str,
        payment_date: datetime | None,
        notes: str | None,
        cheque: ChequeDetailCreate | None,
    ) -> Payment:
        if method == "CHEQUE" and cheque is None:
            raise ValidationError("cheque payments require cheque details", field="cheque_detail")
        if method != "CHEQUE" and cheque is not None:
            raise ValidationError("cheque details are only allowed for cheque payments", field="cheque_detail")

        currency = currency.strip().upper()
        profile = self.profile_service.find_profile(session, tenant_id)
        functional_currency = (
            (profile.functional_currency if profile is not None else None)
            or ctx.functional_currency
            or get_settings().default_currency
        ).upper()
        base_rate = self.resolver.get_rate(session, currency, functional_currency)
        final_rate = apply_markup(
            base_rate,
            profile.markup_type if profile is not None else None,
            profile.markup_value if profile is not None else None,
        )

        payment = Payment(
            tenant_id=tenant_id,
            amount=self._q(amount),
            currency=currency,
            method=method,
            payment_date=payment_date or self.clock.now(),
            base_exchange_rate=base_rate,
            final_exchange_rate=final_rate,
            amount_in_functional_currency=self._q(Decimal(amount) * final_rate),
            functional_currency=functional_currency,
            refunded_amount=_ZERO,
            status="PENDING" if method == "CHEQUE" else "COMPLETED",
            notes=notes,
            created_by=ctx.user_id,
            updated_by=ctx.user_id,
        )
        if cheque is not None:
            payment.cheque_detail = ChequeDetail(**cheque.model_dump(), status="PENDING")
        return payment

    def _apply_allocation(
        self,
        session: Session,
        ctx: TenantContext,
        payment: Payment,
        invoice_id: uuid.UUID,
        amount: Decimal,
    ) -> Invoice:
        amount = self._q(amount)
        if amount <= _ZERO:
            raise ValidationError("allocation amount must be positive", field="amount")
        if payment.status not in ALLOCATABLE_PAYMENT_STATUSES:
            raise ConflictError(f"payment in status {payment.status} cannot be allocated")

        invoice = self._get_invoice(session, ctx, invoice_id, for_update=True)
        if invoice.tenant_id != payment.tenant_id:
            raise ValidationError("invoice belongs to another tenant", field="invoice_id")
        if invoice.status not in OPEN_STATUSES:
            raise ConflictError(f"invoice in status {invoice.status} cannot receive payments")
        if invoice.currency != payment.currency:
            raise ValidationError(
                f"payment currency {payment.currency} does not match invoice currency {invoice.currency}",
                code="CURRENCY_MISMATCH",
                field="invoice_id",
            )
        if amount > self._q(payment.unallocated_amount):
            raise InvariantViolation(f"allocation {amount} exceeds the unallocated amount {self._q(payment.unallocated_amount)}")
        if amount > self._q(invoice.balance_due):
            raise InvariantViolation(f"allocation {amount} exceeds the invoice balance {self._q(invoice.balance_due)}")

        allocation = next((item for item in payment.allocations if item.invoice_id == invoice.id), None)
        if allocation is None:
            payment.allocations.append(PaymentAllocation(invoice_id=invoice.id, amount=amount))
        else:
            allocation.amount = self._q(Decimal(allocation.amount) + amount)

        invoice.paid_amount = self._q(Decimal(invoice.paid_amount) + amount)
        invoice.status = recompute_invoice_status(invoice, self.clock.now())
        invoice.updated_by = ctx.user_id
        payment.updated_by = ctx.user_id
        payment.updated_at = utcnow()
        session.add(invoice)
        session.add(payment)
        return invoice

    def _release_allocation(
        self,
        session: Session,
        ctx: TenantContext,
        payment: Payment,
        invoice_id: uuid.UUID,
        amount: Decimal | None,
    ) -> tuple[Decimal, Invoice | None]:
        allocation = next((item for item in payment.allocations if item.invoice_id == invoice_id), None)
        if allocation is None:
            raise NotFoundError("allocation not found")

        current = self._q(allocation.amount)
        released = current if amount is None else self._q(amount)
        if released <= _ZERO:
            raise ValidationError("deallocation amount must be positive", field="amount")
        if released > current:
            raise InvariantViolation(f"deallocation {released} exceeds the allocated amount {current}")

        if released == current:
            payment.allocations.remove(allocation)
        else:
            allocation.amount = current - released

        invoice = session.get(Invoice, invoice_id, with_for_update=True)
        if invoice is not None:
            invoice.paid_amount = self._q(Decimal(invoice.paid_amount) - released)
            # Void and written-off invoices keep their terminal status.
            if invoice.status in OPEN_STATUSES or invoice.status == "PAID":
                invoice.status = recompute_invoice_status(invoice, self.clock.now())
            invoice.updated_by = ctx.user_id
            session.add(invoice)

        payment.updated_by = ctx.user_id
        payment.updated_at = utcnow()
        session.add(payment)
        return released, invoice

    def _mark_failed(self, payment: Payment, ctx: TenantContext, reason: str) -> None:
        if payment.status in {"FAILED", "REFUNDED"}:
            raise ConflictError(f"payment is already {payment.status}")
        if payment.allocations:
            raise InvariantViolation("payment still has allocations; deallocate before cancelling")
        if Decimal(payment.refunded_amount) > _ZERO:
            raise InvariantViolation("a partially refunded payment cannot be cancelled")
        if not reason or not reason.strip():
            raise ValidationError("reason is required", field="reason")
        payment.status = "FAILED"
        payment.cancellation_reason = reason.strip()
        payment.updated_by = ctx.user_id

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except StaleDataError as exc:
            session.rollback()
            observe_allocation_conflict()
            logger.warning("payments.concurrent_update", extra={"error": str(exc)[:500]})
            raise ConflictError("payment or invoice was modified concurrently; retry the request") from exc

    def _get_payment(
        self,
        session: Session,
        ctx: TenantContext,
        payment_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Payment:
        payment = self.payment_repository.get_scoped(
            session,
            ctx,
            payment_id,
            options=(
                selectinload(Payment.allocations),
                selectinload(Payment.cheque_detail),
                selectinload(Payment.refunds),
            ),
            for_update=for_update,
        )
        if payment is None:
            raise NotFoundError("payment not found")
        return payment

    def _get_invoice(
        self,
        session: Session,
        ctx: TenantContext,
        invoice_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Invoice:
        invoice = self.invoice_repository.get_scoped(session, ctx, invoice_id, for_update=for_update)
        if invoice is None:
            raise NotFoundError("invoice not found")
        return invoice

    @staticmethod
    def _require_cheque(payment: Payment) -> ChequeDetail:
        if payment.method != "CHEQUE" or payment.cheque_detail is None:
            raise ValidationError("payment is not a cheque payment", field="payment_id")
        return payment.cheque_detail

    @staticmethod
    def _merge_allocations(items: list[AllocationInput]) -> list[AllocationInput]:
        merged: dict[uuid.UUID, Decimal] = {}
        for item in items:
            merged[item.invoice_id] = merged.get(item.invoice_id, _ZERO) + item.amount
        return [AllocationInput(invoice_id=invoice_id, amount=amount) for invoice_id, amount in merged.items()]

    def _emit(self, event_type: str, payment: Payment, **extra: Any) -> None:
        events.publish(
            {
                "event_type": event_type,
                "payment_id": str(payment.id),
                "tenant_id": payment.tenant_id,
                "currency": payment.currency,
                "status": payment.status,
                **extra,
            }
        )

    @staticmethod
    def _audit(
        ctx: TenantContext,
        payment: Payment,
        action: str,
        before: PaymentRead | None,
        after: PaymentRead | None,
    ) -> None:
        audit.record(
            actor_user_id=ctx.user_id,
            tenant_id=payment.tenant_id,
            entity_type="payments.payment",
            entity_id=str(payment.id),
            action=action,
            before=before.model_dump(mode="json") if before is not None else None,
            after=after.model_dump(mode="json") if after is not None else None,
            correlation_id=ctx.correlation_id,
        )

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.000001"))


payment_service = PaymentService()


def register_cheque_handlers(
    session_scope: Callable[[], AbstractContextManager[Session]],
    *,
    bus: InProcessEventBus = event_bus,
    service: PaymentService = payment_service,
) -> Callable[[InternalEvent], None]:
    """Subscribe the bounced/cancelled cheque reversal to ``bus`` and return the handler."""

    def handle(event: InternalEvent) -> None:
        envelope = event.payload
        payment_id = uuid.UUID(str(envelope["payment_id"]))
        try:
            with session_scope() as session:
                service.handle_failed_cheque(session, system_context(envelope.get("correlation_id")), payment_id)
        except Exception:
            logger.exception(
                "payments.cheque.reversal_failed",
                extra={"payment_id": str(payment_id), "event_name": envelope.get("event_type")},
            )

    for event_name in FAILED_CHEQUE_EVENTS:
        bus.subscribe(event_name, handle)
    return handle
