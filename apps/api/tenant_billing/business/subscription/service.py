from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from tenant_billing import audit, events
from tenant_billing.business.billing.schemas import GenerateInvoiceRequest, InvoiceItemCreate
from tenant_billing.business.billing.service import OPEN_STATUSES, BillingService
from tenant_billing.business.plans.catalog import PlanDefinition, require_plan
from tenant_billing.business.subscription.models import Subscription
from tenant_billing.business.subscription.repository import SubscriptionRepository
from tenant_billing.business.subscription.schemas import (
    LifecycleRunResponse,
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionRenew,
    SubscriptionUpdate,
)
from tenant_billing.core.config import get_settings
from tenant_billing.platform.clock import Clock, SystemClock, ensure_utc
from tenant_billing.platform.errors import ConflictError, NotFoundError, ValidationError
from tenant_billing.platform.jobs import run_batch_job
from tenant_billing.platform.tenancy import TenantContext, resolve_tenant_id, system_context


logger = logging.getLogger("tenant_billing.subscription")

VALID_SUBSCRIPTION_TRANSITIONS: dict[str, set[str]] = {
    "FUTURE": {"ACTIVE", "CANCELLED"},
    "ACTIVE": {"EXPIRED", "CANCELLED"},
    "EXPIRED": set(),
    "CANCELLED": set(),
}

_CENT = Decimal("0.01")


@dataclass(slots=True)
class SubscriptionService:
    subscription_repository: SubscriptionRepository = SubscriptionRepository()
    billing: BillingService = field(default_factory=BillingService)
    clock: Clock = field(default_factory=SystemClock)

    def create_subscription(self, session: Session, ctx: TenantContext, payload: SubscriptionCreate) -> SubscriptionRead:
        tenant_id = resolve_tenant_id(ctx, payload.tenant_id)
        plan = require_plan(payload.plan_id)
        self._validate_addons(plan, payload.extra_branches, payload.extra_users)

        now = self.clock.now()
        start = ensure_utc(payload.start_date) if payload.start_date is not None else now
        end = start + timedelta(days=plan.duration_days)
        currency = (payload.currency or ctx.functional_currency or get_settings().default_currency).upper()

        subscription = Subscription(
            tenant_id=tenant_id,
            plan_id=plan.id,
            billing_cycle=plan.billing_cycle,
            currency=currency,
            fee=self._q(plan.fee_for(payload.extra_branches, payload.extra_users)),
            start_date=start,
            end_date=end,
            trial_ends_at=end if plan.is_trial else None,
            billing_cycle_anchor=start,
            status="FUTURE" if start > now else "ACTIVE",
            included_branches_snapshot=plan.included_branches,
            purchased_branches=payload.extra_branches,
            bonus_branches=payload.bonus_branches,
            included_users_snapshot=plan.included_users,
            purchased_users=payload.extra_users,
            bonus_users=payload.bonus_users,
            auto_renew=False if plan.is_trial else payload.auto_renew,
            grace_period_days=plan.grace_period_days,
            created_by=ctx.user_id,
            updated_by=ctx.user_id,
        )
        session.add(subscription)
        session.flush()

        if subscription.fee > 0:
            self.billing.generate_invoice(
                session,
                ctx,
                GenerateInvoiceRequest(
                    tenant_id=tenant_id,
                    subscription_id=subscription.id,
                    invoice_type="NEW_SUBSCRIPTION",
                    currency=currency,
                    idempotency_key=f"subscription-new:{subscription.id}",
                    items=self._plan_items(plan, subscription, label="Subscription"),
                ),
                commit=False,
            )

        session.commit()
        session.refresh(subscription)

        result = SubscriptionRead.model_validate(subscription)
        logger.info(
            "subscription.created",
            extra={"subscription_id": str(subscription.id), "tenant_id": tenant_id, "status": subscription.status},
        )
        self._emit("subscription.created", subscription)
        self._audit(ctx, subscription, "create", None, result)
        return result

    def renew_subscription(
        self,
        session: Session,
        ctx: TenantContext,
        subscription_id: uuid.UUID,
        overrides: SubscriptionRenew | None = None,
    ) -> SubscriptionRead:
        old = self._get_subscription(session, ctx, subscription_id, for_update=True)
        renewal = self._renew(session, ctx, old, overrides or SubscriptionRenew(), self.clock.now())
        return SubscriptionRead.model_validate(renewal)

    def cancel_subscription(
        self,
        session: Session,
        ctx: TenantContext,
        subscription_id: uuid.UUID,
        reason: str,
    ) -> SubscriptionRead:
        subscription = self._get_subscription(session, ctx, subscription_id, for_update=True)
        if subscription.status in {"EXPIRED", "CANCELLED"}:
            raise ConflictError(f"subscription is already {subscription.status}")

        before = SubscriptionRead.model_validate(subscription)
        subscription.cancel_at_period_end = True
        subscription.cancellation_reason = reason.strip()
        subscription.auto_renew = False
        subscription.updated_by = ctx.user_id
        session.add(subscription)

        # A renewal queued by the renewal window must not start once the current period is cancelled.
        queued = self.subscription_repository.get_renewal_of(session, subscription.id)
        if queued is not None and queued.status != "FUTURE":
            queued = None
        if queued is not None:
            self._transition(queued, "CANCELLED")
            queued.canceled_at = self.clock.now()
            queued.cancellation_reason = subscription.cancellation_reason
            queued.auto_renew = False
            queued.updated_by = ctx.user_id
            session.add(queued)

        session.commit()
        session.refresh(subscription)

        result = SubscriptionRead.model_validate(subscription)
        logger.info("subscription.cancelled", extra={"subscription_id": str(subscription.id), "tenant_id": subscription.tenant_id})
        self._emit("subscription.cancelled", subscription, reason=subscription.cancellation_reason, effective="period_end")
        self._audit(ctx, subscription, "cancel", before, result)
        if queued is not None:
            self._emit("subscription.cancelled", queued, reason=queued.cancellation_reason, effective="now")
            self._void_renewal_invoice(session, ctx, subscription)
        return result

    def update_subscription(
        self,
        session: Session,
        ctx: TenantContext,
        subscription_id: uuid.UUID,
        payload: SubscriptionUpdate,
    ) -> SubscriptionRead:
        subscription = self._get_subscription(session, ctx, subscription_id, for_update=True)
        plan = require_plan(subscription.plan_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        extra_branches = changes.get("extra_branches", subscription.purchased_branches)
        extra_users = changes.get("extra_users", subscription.purchased_users)
        self._validate_addons(plan, extra_branches, extra_users)
        if plan.is_trial and changes.get("auto_renew"):
            raise ValidationError("trial subscriptions cannot auto renew", field="auto_renew")

        before = SubscriptionRead.model_validate(subscription)
        now = self.clock.now()
        upgrade_items = self._proration_items(plan, subscription, extra_branches, extra_users, now)
        if upgrade_items:
            self.billing.generate_invoice(
                session,
                ctx,
                GenerateInvoiceRequest(
                    tenant_id=subscription.tenant_id,
                    subscription_id=subscription.id,
                    invoice_type="UPGRADE",
                    currency=subscription.currency,
                    due_date=now,
                    items=upgrade_items,
                ),
                commit=False,
            )

        subscription.purchased_branches = extra_branches
        subscription.purchased_users = extra_users
        subscription.bonus_branches = changes.get("bonus_branches", subscription.bonus_branches)
        subscription.bonus_users = changes.get("bonus_users", subscription.bonus_users)
        subscription.auto_renew = changes.get("auto_renew", subscription.auto_renew)
        subscription.grace_period_days = changes.get("grace_period_days", subscription.grace_period_days)
        subscription.fee = self._q(plan.fee_for(extra_branches, extra_users))
        subscription.updated_by = ctx.user_id
        session.add(subscription)
        session.commit()
        session.refresh(subscription)

        result = SubscriptionRead.model_validate(subscription)
        logger.info("subscription.updated", extra={"subscription_id": str(subscription.id), "tenant_id": subscription.tenant_id})
        self._emit("subscription.updated", subscription, prorated=bool(upgrade_items))
        self._audit(ctx, subscription, "update", before, result)
        return result

    def toggle_auto_renew(
        self,
        session: Session,
        ctx: TenantContext,
        subscription_id: uuid.UUID,
        enabled: bool,
    ) -> SubscriptionRead:
        subscription = self._get_subscription(session, ctx, subscription_id, for_update=True)
        if enabled and subscription.billing_cycle == "TRIAL":
            raise ValidationError("trial subscriptions cannot auto renew", field="enabled")
        if enabled and subscription.cancel_at_period_end:
            raise ConflictError("subscription is scheduled for cancellation")

        before = SubscriptionRead.model_validate(subscription)
        subscription.auto_renew = enabled
        subscription.updated_by = ctx.user_id
        session.add(subscription)
        session.commit()
        session.refresh(subscription)

        result = SubscriptionRead.model_validate(subscription)
        self._emit("subscription.updated", subscription, auto_renew=enabled)
        self._audit(ctx, subscription, "toggle_auto_renew", before, result)
        return result

    def get_subscription(self, session: Session, ctx: TenantContext, subscription_id: uuid.UUID) -> SubscriptionRead:
        return SubscriptionRead.model_validate(self._get_subscription(session, ctx, subscription_id))

    def list_subscriptions(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        tenant_id: str | None = None,
        status: str | None = None,
    ) -> list[SubscriptionRead]:
        stmt = select(Subscription).where(Subscription.is_deleted.is_(False))
        if tenant_id is not None:
            stmt = stmt.where(Subscription.tenant_id == resolve_tenant_id(ctx, tenant_id))
        if status is not None:
            stmt = stmt.where(Subscription.status == status.upper())
        stmt = self.subscription_repository.apply_scope_query(stmt, ctx).order_by(
            Subscription.tenant_id,
            Subscription.start_date.desc(),
        )
        return [SubscriptionRead.model_validate(row) for row in session.scalars(stmt).all()]

    def get_active_subscription(self, session: Session, ctx: TenantContext, tenant_id: str | None = None) -> SubscriptionRead:
        tenant_id = resolve_tenant_id(ctx, tenant_id)
        subscription = self.subscription_repository.get_active_for_tenant(session, tenant_id)
        if subscription is None:
            raise NotFoundError("no active subscription for tenant")
        return SubscriptionRead.model_validate(subscription)

    def delete_subscription(self, session: Session, ctx: TenantContext, subscription_id: uuid.UUID) -> None:
        subscription = self._get_subscription(session, ctx, subscription_id, for_update=True)
        before = SubscriptionRead.model_validate(subscription)
        subscription.is_deleted = True
        subscription.updated_by = ctx.user_id
        session.add(subscription)
        session.commit()
        self._audit(ctx, subscription, "delete", before, None)

    def process_auto_renewals(self, session: Session, now: datetime | None = None) -> int:
        now = ensure_utc(now or self.clock.now())
        horizon = now + timedelta(days=get_settings().renewal_window_days)
        renewal = aliased(Subscription)
        candidate_ids = list(
            session.scalars(
                select(Subscription.id)
                .where(
                    Subscription.status == "ACTIVE",
                    Subscription.auto_renew.is_(True),
                    Subscription.cancel_at_period_end.is_(False),
                    Subscription.is_deleted.is_(False),
                    Subscription.end_date <= horizon,
                    ~select(renewal.id).where(renewal.previous_subscription_id == Subscription.id).exists(),
                )
                .order_by(Subscription.tenant_id, Subscription.start_date)
            ).all()
        )
        ctx = system_context()

        def renew(subscription_id: uuid.UUID) -> bool:
            old = session.get(Subscription, subscription_id, with_for_update=True)
            if old is None or old.is_deleted or old.status != "ACTIVE":
                return False
            if not old.auto_renew or old.cancel_at_period_end or ensure_utc(old.end_date) > horizon:
                return False
            if self.subscription_repository.get_renewal_of(session, old.id) is not None:
                return False
            self._renew(session, ctx, old, SubscriptionRenew(), now, continuous=True)
            return True

        return run_batch_job(session, "subscription.process_auto_renewals", candidate_ids, renew)

    def process_scheduled_cancellations(self, session: Session, now: datetime | None = None) -> int:
        now = ensure_utc(now or self.clock.now())
        candidate_ids = list(
            session.scalars(
                select(Subscription.id)
                .where(
                    Subscription.status == "ACTIVE",
                    Subscription.cancel_at_period_end.is_(True),
                    Subscription.is_deleted.is_(False),
                    Subscription.end_date <= now,
                )
                .order_by(Subscription.tenant_id, Subscription.start_date)
            ).all()
        )

        def cancel(subscription_id: uuid.UUID) -> bool:
            subscription = session.get(Subscription, subscription_id, with_for_update=True)
            if subscription is None or subscription.status != "ACTIVE" or not subscription.cancel_at_period_end:
                return False
            if ensure_utc(subscription.end_date) > now:
                return False
            self._transition(subscription, "CANCELLED")
            subscription.canceled_at = now
            session.add(subscription)
            session.commit()
            self._emit("subscription.cancelled", subscription, reason=subscription.cancellation_reason, effective="now")
            return True

        return run_batch_job(session, "subscription.process_scheduled_cancellations", candidate_ids, cancel)

    def process_expirations(self, session: Session, now: datetime | None = None) -> int:
        now = ensure_utc(now or self.clock.now())
        rows = session.execute(
            select(Subscription.id, Subscription.end_date, Subscription.grace_period_days)
            .where(
                Subscription.status == "ACTIVE",
                Subscription.auto_renew.is_(False),
                Subscription.is_deleted.is_(False),
                Subscription.end_date <= now,
            )
            .order_by(Subscription.tenant_id, Subscription.start_date)
        ).all()
        # Grace periods vary per row, so the cutoff is applied here rather than in SQL.
        candidate_ids = [
            row_id for row_id, end_date, grace in rows if ensure_utc(end_date) + timedelta(days=grace) <= now
        ]

        def expire(subscription_id: uuid.UUID) -> bool:
            subscription = session.get(Subscription, subscription_id, with_for_update=True)
            if subscription is None or subscription.status != "ACTIVE" or subscription.auto_renew:
                return False
            if ensure_utc(subscription.end_date) + timedelta(days=subscription.grace_period_days) > now:
                return False
            self._transition(subscription, "EXPIRED")
            session.add(subscription)
            session.commit()
            self._emit("subscription.expired", subscription)
            return True

        return run_batch_job(session, "subscription.process_expirations", candidate_ids, expire)

    def activate_future_subscriptions(self, session: Session, now: datetime | None = None) -> int:
        now = ensure_utc(now or self.clock.now())
        candidate_ids = list(
            session.scalars(
                select(Subscription.id)
                .where(
                    Subscription.status == "FUTURE",
                    Subscription.is_deleted.is_(False),
                    Subscription.start_date <= now,
                )
                .order_by(Subscription.tenant_id, Subscription.start_date)
            ).all()
        )

        def activate(subscription_id: uuid.UUID) -> bool:
            subscription = session.get(Subscription, subscription_id, with_for_update=True)
            if subscription is None or subscription.status != "FUTURE" or ensure_utc(subscription.start_date) > now:
                return False
            self._transition(subscription, "ACTIVE")
            session.add(subscription)
            if subscription.previous_subscription_id is not None:
                previous = session.get(Subscription, subscription.previous_subscription_id, with_for_update=True)
                if previous is not None and previous.status == "ACTIVE":
                    self._transition(previous, "EXPIRED")
                    session.add(previous)
            session.commit()
            self._emit("subscription.activated", subscription)
            return True

        return run_batch_job(session, "subscription.activate_future_subscriptions", candidate_ids, activate)

    def run_lifecycle(self, session: Session, now: datetime | None = None) -> LifecycleRunResponse:
        now = ensure_utc(now or self.clock.now())
        activated = self.activate_future_subscriptions(session, now)
        cancelled = self.process_scheduled_cancellations(session, now)
        expired = self.process_expirations(session, now)
        renewed = self.process_auto_renewals(session, now)
        return LifecycleRunResponse(renewed=renewed, cancelled=cancelled, expired=expired, activated=activated)

    def _renew(
        self,
        session: Session,
        ctx: TenantContext,
        old: Subscription,
        overrides: SubscriptionRenew,
        now: datetime,
        *,
        continuous: bool = False,
    ) -> Subscription:
        """Queue the period that follows ``old``.

        Scheduled renewals are ``continuous``: the new period always starts at ``old.end_date``, even when the job
        runs after the subscription lapsed. A manual renewal of a lapsed subscription starts now instead.
        """
        if self.subscription_repository.get_renewal_of(session, old.id) is not None:
            raise ConflictError("a renewal is already queued for this subscription")
        if old.status == "CANCELLED":
            raise ConflictError("a cancelled subscription cannot be renewed")

        plan = require_plan(overrides.plan_id or old.plan_id)
        if plan.is_trial:
            raise ValidationError("trial subscriptions must be renewed onto a paid plan", field="plan_id")

        extra_branches = old.purchased_branches if overrides.extra_branches is None else overrides.extra_branches
        extra_users = old.purchased_users if overrides.extra_users is None else overrides.extra_users
        self._validate_addons(plan, extra_branches, extra_users)

        old_end = ensure_utc(old.end_date)
        start = old_end if continuous or old_end >= now else now
        anchor = ensure_utc(old.billing_cycle_anchor) if old.billing_cycle_anchor and old.billing_cycle == plan.billing_cycle else start
        end = self._period_end(start, plan, anchor)
        is_conversion = plan.id != old.plan_id

        renewal = Subscription(
            tenant_id=old.tenant_id,
            plan_id=plan.id,
            billing_cycle=plan.billing_cycle,
            currency=old.currency,
            fee=self._q(plan.fee_for(extra_branches, extra_users)),
            start_date=start,
            end_date=end,
            billing_cycle_anchor=anchor,
            status="FUTURE" if start > now else "ACTIVE",
            included_branches_snapshot=plan.included_branches if is_conversion else old.included_branches_snapshot,
            purchased_branches=extra_branches,
            bonus_branches=old.bonus_branches if overrides.bonus_branches is None else overrides.bonus_branches,
            included_users_snapshot=plan.included_users if is_conversion else old.included_users_snapshot,
            purchased_users=extra_users,
            bonus_users=old.bonus_users if overrides.bonus_users is None else overrides.bonus_users,
            auto_renew=True if overrides.auto_renew is None else overrides.auto_renew,
            grace_period_days=plan.grace_period_days if is_conversion else old.grace_period_days,
            previous_subscription_id=old.id,
            created_by=ctx.user_id,
            updated_by=ctx.user_id,
        )
        session.add(renewal)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("a renewal is already queued for this subscription") from exc

        if renewal.status == "ACTIVE" and old.status == "ACTIVE":
            self._transition(old, "EXPIRED")
            old.updated_by = ctx.user_id
            session.add(old)

        if renewal.fee > 0:
            self.billing.generate_invoice(
                session,
                ctx,
                GenerateInvoiceRequest(
                    tenant_id=renewal.tenant_id,
                    subscription_id=renewal.id,
                    invoice_type="RENEWAL",
                    currency=renewal.currency,
                    due_date=start + timedelta(days=get_settings().invoice_due_days),
                    idempotency_key=f"subscription-renewal:{old.id}",
                    items=self._plan_items(plan, renewal, label="Renewal"),
                ),
                commit=False,
            )

        session.commit()
        session.refresh(renewal)

        logger.info(
            "subscription.renewed",
            extra={"subscription_id": str(renewal.id), "tenant_id": renewal.tenant_id, "status": renewal.status},
        )
        self._emit("subscription.renewed", renewal, previous_subscription_id=str(old.id))
        self._audit(ctx, renewal, "renew", None, SubscriptionRead.model_validate(renewal))
        return renewal

    def _void_renewal_invoice(self, session: Session, ctx: TenantContext, old: Subscription) -> None:
        invoice = self.billing.invoice_repository.get_by_idempotency_key(session, f"subscription-renewal:{old.id}")
        if invoice is None or invoice.status not in OPEN_STATUSES:
            return
        if Decimal(invoice.paid_amount) > 0:
            logger.warning(
                "subscription.renewal_invoice_paid",
                extra={"subscription_id": str(old.id), "invoice_id": str(invoice.id), "tenant_id": old.tenant_id},
            )
            return
        self.billing.void_invoice(session, ctx, invoice.id, "renewal cancelled before it started")

    def _proration_items(
        self,
        plan: PlanDefinition,
        subscription: Subscription,
        extra_branches: int,
        extra_users: int,
        now: datetime,
    ) -> list[InvoiceItemCreate]:
        end = ensure_utc(subscription.end_date)
        if subscription.status != "ACTIVE" or end <= now:
            return []
        days_remaining = (end - now).days
        if days_remaining <= 0:
            return []

        cycle_days = Decimal("365") if subscription.billing_cycle == "YEARLY" else Decimal("30")
        items: list[InvoiceItemCreate] = []
        if extra_users > subscription.purchased_users:
            items.append(
                InvoiceItemCreate(
                    description="Capacity upgrade: users",
                    item_type="ADDON_USER",
                    quantity=Decimal(extra_users - subscription.purchased_users),
                    unit_price=(plan.user_price / cycle_days * days_remaining).quantize(_CENT),
                    period_start=now,
                    period_end=end,
                )
            )
        if extra_branches > subscription.purchased_branches:
            items.append(
                InvoiceItemCreate(
                    description="Capacity upgrade: branches",
                    item_type="ADDON_BRANCH",
                    quantity=Decimal(extra_branches - subscription.purchased_branches),
                    unit_price=(plan.branch_price / cycle_days * days_remaining).quantize(_CENT),
                    period_start=now,
                    period_end=end,
                )
            )
        return items

    @staticmethod
    def _plan_items(plan: PlanDefinition, subscription: Subscription, *, label: str) -> list[InvoiceItemCreate]:
        period_start = ensure_utc(subscription.start_date)
        period_end = ensure_utc(subscription.end_date)
        items = [
            InvoiceItemCreate(
                description=f"{plan.name} {label}",
                item_type="BASE_PLAN",
                quantity=Decimal("1"),
                unit_price=plan.base_fee,
                period_start=period_start,
                period_end=period_end,
            )
        ]
        if subscription.purchased_branches > 0:
            items.append(
                InvoiceItemCreate(
                    description="Additional branches",
                    item_type="ADDON_BRANCH",
                    quantity=Decimal(subscription.purchased_branches),
                    unit_price=plan.branch_price,
                    period_start=period_start,
                    period_end=period_end,
                )
            )
        if subscription.purchased_users > 0:
            items.append(
                InvoiceItemCreate(
                    description="Additional users",
                    item_type="ADDON_USER",
                    quantity=Decimal(subscription.purchased_users),
                    unit_price=plan.user_price,
                    period_start=period_start,
                    period_end=period_end,
                )
            )
        return items

    @staticmethod
    def _validate_addons(plan: PlanDefinition, extra_branches: int, extra_users: int) -> None:
        if not plan.allow_addons and (extra_branches > 0 or extra_users > 0):
            raise ValidationError(f"plan {plan.id} does not allow add-ons", field="extra_branches")

    def _get_subscription(
        self,
        session: Session,
        ctx: TenantContext,
        subscription_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Subscription:
        subscription = self.subscription_repository.get_scoped(session, ctx, subscription_id, for_update=for_update)
        if subscription is None:
            raise NotFoundError("subscription not found")
        return subscription

    @staticmethod
    def _transition(subscription: Subscription, target: str) -> None:
        allowed = VALID_SUBSCRIPTION_TRANSITIONS.get(subscription.status, set())
        if target not in allowed:
            raise ConflictError(f"invalid subscription transition {subscription.status} -> {target}")
        subscription.status = target

    def _emit(self, event_type: str, subscription: Subscription, **extra: object) -> None:
        events.publish(
            {
                "event_type": event_type,
                "subscription_id": str(subscription.id),
                "tenant_id": subscription.tenant_id,
                "plan_id": subscription.plan_id,
                "status": subscription.status,
                "start_date": ensure_utc(subscription.start_date).isoformat(),
                "end_date": ensure_utc(subscription.end_date).isoformat(),
                **extra,
            }
        )

    @staticmethod
    def _audit(
        ctx: TenantContext,
        subscription: Subscription,
        action: str,
        before: SubscriptionRead | None,
        after: SubscriptionRead | None,
    ) -> None:
        audit.record(
            actor_user_id=ctx.user_id,
            tenant_id=subscription.tenant_id,
            entity_type="subscription.subscription",
            entity_id=str(subscription.id),
            action=action,
            before=before.model_dump(mode="json") if before is not None else None,
            after=after.model_dump(mode="json") if after is not None else None,
            correlation_id=ctx.correlation_id,
        )

    @staticmethod
    def _period_end(start: datetime, plan: PlanDefinition, anchor: datetime) -> datetime:
        months = 12 if plan.billing_cycle == "YEARLY" else 1
        end = SubscriptionService._add_months(start, months)
        # Keep month-end anchors (e.g. the 31st) from drifting after a short month.
        if anchor.day > end.day:
            end = end.replace(day=min(anchor.day, calendar.monthrange(end.year, end.month)[1]))
        return end

    @staticmethod
    def _add_months(value: datetime, months: int) -> datetime:
        month_index = value.month - 1 + months
        year = value.year + (month_index // 12)
        month = month_index % 12 + 1
        day = min(value.day, calendar.monthrange(year, month)[1])
        return value.replace(year=year, month=month, day=day)

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.000001"))


subscription_service = SubscriptionService()
