from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from tenant_billing import audit, events
from tenant_billing.business.billing.models import Invoice, InvoiceItem
from tenant_billing.business.billing.repository import InvoiceRepository
from tenant_billing.business.billing.schemas import GenerateInvoiceRequest, InvoiceRead, OutstandingBalanceRead
from tenant_billing.business.tenants.service import TenantProfileService
from tenant_billing.core.config import get_settings
from tenant_billing.metrics import observe_invoice_generated, observe_invoice_number_conflict
from tenant_billing.platform.clock import Clock, SystemClock, ensure_utc
from tenant_billing.platform.errors import ConflictError, InvariantViolation, NotFoundError, ValidationError
from tenant_billing.platform.jobs import run_batch_job
from tenant_billing.platform.tenancy import TenantContext, resolve_tenant_id


logger = logging.getLogger("tenant_billing.billing")

OPEN_STATUSES = frozenset({"ISSUED", "PARTIALLY_PAID", "OVERDUE"})
OVERDUE_CANDIDATE_STATUSES = ("ISSUED", "PARTIALLY_PAID")


def recompute_invoice_status(invoice: Invoice, now: datetime) -> str:
    """Derive the payment status of an open invoice from its paid amount and due date."""

    paid = Decimal(invoice.paid_amount)
    if paid >= Decimal(invoice.total_amount) and paid > 0:
        return "PAID"
    if paid > 0:
        return "PARTIALLY_PAID"
    if ensure_utc(invoice.due_date) < ensure_utc(now):
        return "OVERDUE"
    return "ISSUED"


@dataclass(slots=True)
class BillingService:
    invoice_repository: InvoiceRepository = InvoiceRepository()
    profile_service: TenantProfileService = field(default_factory=TenantProfileService)
    clock: Clock = field(default_factory=SystemClock)

    def generate_invoice(
        self,
        session: Session,
        ctx: TenantContext,
        payload: GenerateInvoiceRequest,
        *,
        commit: bool = True,
    ) -> InvoiceRead:
        tenant_id = resolve_tenant_id(ctx, payload.tenant_id)

        if payload.idempotency_key:
            existing = self._find_idempotent(session, payload.idempotency_key, tenant_id, payload.subscription_id)
            if existing is not None:
                logger.info(
                    "invoice.idempotent_hit",
                    extra={"invoice_id": str(existing.id), "tenant_id": tenant_id},
                )
                return InvoiceRead.model_validate(existing)

        settings = get_settings()
        now = self.clock.now()
        currency = (payload.currency or ctx.functional_currency or settings.default_currency).upper()
        tax_rate = Decimal(payload.tax_rate if payload.tax_rate is not None else settings.default_tax_rate)

        subtotal = self._q(
            sum((Decimal(item.quantity) * Decimal(item.unit_price) for item in payload.items), start=Decimal("0"))
        )
        tax_amount = self._q(subtotal * tax_rate)
        total = self._q(subtotal + tax_amount)

        profile = self.profile_service.find_profile(session, tenant_id)
        values = {
            "tenant_id": tenant_id,
            "subscription_id": payload.subscription_id,
            "idempotency_key": payload.idempotency_key,
            "invoice_type": payload.invoice_type,
            "currency": currency,
            "status": "ISSUED",
            "issue_date": now,
            "due_date": payload.due_date or now + timedelta(days=settings.invoice_due_days),
            "billed_to_name": profile.legal_name if profile is not None else tenant_id,
            "billed_to_address": profile.address if profile is not None else None,
            "billed_to_tax_number": profile.tax_number if profile is not None else None,
            "subtotal": subtotal,
            "tax_rate": tax_rate,
            "tax_amount": tax_amount,
            "total_amount": total,
            "paid_amount": Decimal("0"),
            "created_by": ctx.user_id,
            "updated_by": ctx.user_id,
        }

        invoice: Invoice | None = None
        for _attempt in range(2):
            candidate = self._build_invoice(values, payload, self._next_number(session, now))
            try:
                with session.begin_nested():
                    session.add(candidate)
            except IntegrityError:
                if payload.idempotency_key:
                    existing = self._find_idempotent(session, payload.idempotency_key, tenant_id, payload.subscription_id)
                    if existing is not None:
                        return InvoiceRead.model_validate(existing)
                observe_invoice_number_conflict()
                logger.warning(
                    "invoice.number_conflict",
                    extra={"invoice_number": candidate.invoice_number, "tenant_id": tenant_id},
                )
                continue
            invoice = candidate
            break

        if invoice is None:
            raise ConflictError("could not allocate a unique invoice number")
        if commit:
            session.commit()
            session.refresh(invoice)

        result = InvoiceRead.model_validate(invoice)
        observe_invoice_generated(invoice.invoice_type)
        logger.info(
            "invoice.generated",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "tenant_id": tenant_id,
                "amount": str(invoice.total_amount),
            },
        )
        events.publish(
            {
                "event_type": "invoice.generated",
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "tenant_id": tenant_id,
                "subscription_id": str(invoice.subscription_id) if invoice.subscription_id else None,
                "invoice_type": invoice.invoice_type,
                "currency": invoice.currency,
                "total_amount": str(invoice.total_amount),
            }
        )
        audit.record(
            actor_user_id=ctx.user_id,
            tenant_id=tenant_id,
            entity_type="billing.invoice",
            entity_id=str(invoice.id),
            action="generate",
            before=None,
            after=result.model_dump(mode="json"),
            correlation_id=ctx.correlation_id,
        )
        return result

    def void_invoice(self, session: Session, ctx: TenantContext, invoice_id: uuid.UUID, reason: str) -> InvoiceRead:
        invoice = self._get_invoice(session, ctx, invoice_id, for_update=True)
        if invoice.status == "PAID":
            raise InvariantViolation("a paid invoice cannot be voided")
        if invoice.status in {"VOID", "UNCOLLECTIBLE"}:
            raise ConflictError(f"invoice is already {invoice.status}")
        return self._close_invoice(session, ctx, invoice, "VOID", reason, event_type="invoice.voided")

    def write_off_invoice(self, session: Session, ctx: TenantContext, invoice_id: uuid.UUID, reason: str) -> InvoiceRead:
        invoice = self._get_invoice(session, ctx, invoice_id, for_update=True)
        if invoice.status in {"PAID", "VOID"}:
            raise InvariantViolation(f"invoice in status {invoice.status} cannot be written off")
        if invoice.status == "UNCOLLECTIBLE":
            raise ConflictError("invoice is already UNCOLLECTIBLE")
        return self._close_invoice(session, ctx, invoice, "UNCOLLECTIBLE", reason, event_type="invoice.written_off")

    def get_invoice(self, session: Session, ctx: TenantContext, invoice_id: uuid.UUID) -> InvoiceRead:
        return InvoiceRead.model_validate(self._get_invoice(session, ctx, invoice_id))

    def list_invoices(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        tenant_id: str | None = None,
        status: str | None = None,
        subscription_id: uuid.UUID | None = None,
    ) -> list[InvoiceRead]:
        stmt = select(Invoice).options(selectinload(Invoice.items))
        if tenant_id is not None:
            stmt = stmt.where(Invoice.tenant_id == resolve_tenant_id(ctx, tenant_id))
        if status is not None:
            stmt = stmt.where(Invoice.status == status.upper())
        if subscription_id is not None:
            stmt = stmt.where(Invoice.subscription_id == subscription_id)
        stmt = self.invoice_repository.apply_scope_query(stmt, ctx).order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc())
        return [InvoiceRead.model_validate(row) for row in session.scalars(stmt).all()]

    def get_outstanding_balance(
        self,
        session: Session,
        ctx: TenantContext,
        tenant_id: str | None = None,
    ) -> list[OutstandingBalanceRead]:
        tenant_id = resolve_tenant_id(ctx, tenant_id)
        rows = session.execute(
            select(
                Invoice.currency,
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.total_amount - Invoice.paid_amount), 0),
            )
            .where(Invoice.tenant_id == tenant_id, Invoice.status.in_(tuple(OPEN_STATUSES)))
            .group_by(Invoice.currency)
            .order_by(Invoice.currency)
        ).all()
        return [
            OutstandingBalanceRead(
                tenant_id=tenant_id,
                currency=currency,
                invoice_count=int(count),
                balance_due=self._q(Decimal(balance)),
            )
            for currency, count, balance in rows
        ]

    def mark_overdue_invoices(self, session: Session, now: datetime | None = None) -> int:
        now = ensure_utc(now or self.clock.now())
        candidate_ids = list(
            session.scalars(
                select(Invoice.id)
                .where(Invoice.status.in_(OVERDUE_CANDIDATE_STATUSES), Invoice.due_date < now)
                .order_by(Invoice.tenant_id, Invoice.due_date)
            ).all()
        )

        def mark(invoice_id: uuid.UUID) -> bool:
            invoice = session.get(Invoice, invoice_id, with_for_update=True)
            if invoice is None or invoice.status not in OVERDUE_CANDIDATE_STATUSES:
                return False
            if ensure_utc(invoice.due_date) >= now:
                return False
            invoice.status = "OVERDUE"
            session.add(invoice)
            session.commit()
            events.publish(
                {
                    "event_type": "invoice.overdue",
                    "invoice_id": str(invoice.id),
                    "tenant_id": invoice.tenant_id,
                    "balance_due": str(invoice.balance_due),
                }
            )
            return True

        return run_batch_job(session, "billing.mark_overdue_invoices", candidate_ids, mark)

    def _close_invoice(
        self,
        session: Session,
        ctx: TenantContext,
        invoice: Invoice,
        status: str,
        reason: str,
        *,
        event_type: str,
    ) -> InvoiceRead:
        if not reason or not reason.strip():
            raise ValidationError("reason is required", field="reason")

        before = InvoiceRead.model_validate(invoice).model_dump(mode="json")
        previous_status = invoice.status
        invoice.status = status
        invoice.status_reason = reason.strip()
        invoice.updated_by = ctx.user_id
        session.add(invoice)
        session.commit()
        session.refresh(invoice)

        result = InvoiceRead.model_validate(invoice)
        logger.info(
            event_type,
            extra={"invoice_id": str(invoice.id), "tenant_id": invoice.tenant_id, "status": status},
        )
        events.publish(
            {
                "event_type": event_type,
                "invoice_id": str(invoice.id),
                "tenant_id": invoice.tenant_id,
                "previous_status": previous_status,
                "reason": invoice.status_reason,
            }
        )
        audit.record(
            actor_user_id=ctx.user_id,
            tenant_id=invoice.tenant_id,
            entity_type="billing.invoice",
            entity_id=str(invoice.id),
            action=status.lower(),
            before=before,
            after=result.model_dump(mode="json"),
            correlation_id=ctx.correlation_id,
        )
        return result

    def _find_idempotent(
        self,
        session: Session,
        idempotency_key: str,
        tenant_id: str,
        subscription_id: uuid.UUID | None,
    ) -> Invoice | None:
        existing = self.invoice_repository.get_by_idempotency_key(session, idempotency_key)
        if existing is None:
            return None
        if existing.tenant_id != tenant_id or existing.subscription_id != subscription_id:
            raise ConflictError("idempotency key already used for a different invoice", code="IDEMPOTENCY_KEY_REUSED")
        return existing

    def _get_invoice(
        self,
        session: Session,
        ctx: TenantContext,
        invoice_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Invoice:
        invoice = self.invoice_repository.get_scoped(
            session,
            ctx,
            invoice_id,
            options=(selectinload(Invoice.items),),
            for_update=for_update,
        )
        if invoice is None:
            raise NotFoundError("invoice not found")
        return invoice

    def _build_invoice(self, values: dict[str, object], payload: GenerateInvoiceRequest, number: str) -> Invoice:
        invoice = Invoice(invoice_number=number, **values)
        for position, item in enumerate(payload.items):
            invoice.items.append(
                InvoiceItem(
                    position=position,
                    description=item.description,
                    item_type=item.item_type,
                    quantity=self._q(Decimal(item.quantity)),
                    unit_price=self._q(Decimal(item.unit_price)),
                    line_total=self._q(Decimal(item.quantity) * Decimal(item.unit_price)),
                    period_start=item.period_start,
                    period_end=item.period_end,
                )
            )
        return invoice

    def _next_number(self, session: Session, now: datetime) -> str:
        prefix = f"{get_settings().invoice_number_prefix}-{now.year}-"
        highest = self.invoice_repository.highest_number_for(session, prefix)
        sequence = 0
        if highest is not None:
            try:
                sequence = int(highest.removeprefix(prefix))
            except ValueError:
                sequence = 0
        return f"{prefix}{sequence + 1:05d}"

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.000001"))


billing_service = BillingService()
