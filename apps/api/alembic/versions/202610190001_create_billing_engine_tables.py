"""create billing engine tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tenant_billing_profile",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("legal_name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("tax_number", sa.String(length=64), nullable=True),
        sa.Column("functional_currency", sa.String(length=16), nullable=False, server_default="USD"),
        sa.Column("markup_type", sa.String(length=16), nullable=False, server_default="NONE"),
        sa.Column("markup_value", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", name="uq_tenant_billing_profile_tenant"),
    )

    op.create_table(
        "currency_exchange_rate",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("base_currency", sa.String(length=16), nullable=False),
        sa.Column("target_currency", sa.String(length=16), nullable=False),
        sa.Column("rate", sa.Numeric(18, 8), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_currency_exchange_rate_pair",
        "currency_exchange_rate",
        ["base_currency", "target_currency", "last_updated"],
        unique=False,
    )

    op.create_table(
        "subscription",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("plan_id", sa.String(length=32), nullable=False),
        sa.Column("billing_cycle", sa.String(length=16), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("fee", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("billing_cycle_anchor", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="ACTIVE"),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("included_branches_snapshot", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("purchased_branches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_branches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_users_snapshot", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("purchased_users", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_users", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("grace_period_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("previous_subscription_id", sa.Uuid(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("previous_subscription_id", name="uq_subscription_previous"),
    )
    op.create_index("ix_subscription_tenant_status", "subscription", ["tenant_id", "status"], unique=False)
    op.create_index("ix_subscription_status_end", "subscription", ["status", "end_date"], unique=False)

    op.create_table(
        "billing_invoice",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("invoice_type", sa.String(length=32), nullable=False, server_default="MANUAL"),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="DRAFT"),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("billed_to_name", sa.String(length=255), nullable=False),
        sa.Column("billed_to_address", sa.Text(), nullable=True),
        sa.Column("billed_to_tax_number", sa.String(length=64), nullable=True),
        sa.Column("subtotal", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Numeric(9, 6), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number", name="uq_billing_invoice_number"),
        sa.UniqueConstraint("idempotency_key", name="uq_billing_invoice_idempotency_key"),
    )
    op.create_index("ix_billing_invoice_tenant_status", "billing_invoice", ["tenant_id", "status"], unique=False)
    op.create_index("ix_billing_invoice_subscription", "billing_invoice", ["subscription_id"], unique=False)

    op.create_table(
        "billing_invoice_item",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("item_type", sa.String(length=32), nullable=False, server_default="OTHER"),
        sa.Column("quantity", sa.Numeric(18, 6), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("line_total", sa.Numeric(18, 6), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["invoice_id"], ["billing_invoice.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_billing_invoice_item_invoice", "billing_invoice_item", ["invoice_id"], unique=False)

    op.create_table(
        "payments_payment",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("method", sa.String(length=32), nullable=False),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("base_exchange_rate", sa.Numeric(18, 8), nullable=False),
        sa.Column("final_exchange_rate", sa.Numeric(18, 8), nullable=False),
        sa.Column("amount_in_functional_currency", sa.Numeric(18, 6), nullable=False),
        sa.Column("functional_currency", sa.String(length=16), nullable=False),
        sa.Column("refunded_amount", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="COMPLETED"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_payment_tenant_status", "payments_payment", ["tenant_id", "status"], unique=False)
    op.create_index("ix_payments_payment_date", "payments_payment", ["payment_date"], unique=False)

    op.create_table(
        "payments_allocation",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("payment_id", sa.Uuid(), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["payment_id"], ["payments_payment.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invoice_id"], ["billing_invoice.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id", "invoice_id", name="uq_payments_allocation_payment_invoice"),
    )
    op.create_index("ix_payments_allocation_invoice", "payments_allocation", ["invoice_id"], unique=False)

    op.create_table(
        "payments_cheque_detail",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("payment_id", sa.Uuid(), nullable=False),
        sa.Column("cheque_number", sa.String(length=64), nullable=False),
        sa.Column("bank_name", sa.String(length=255), nullable=False),
        sa.Column("branch", sa.String(length=255), nullable=True),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
        sa.Column("cleared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["payment_id"], ["payments_payment.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id", name="uq_payments_cheque_detail_payment"),
    )

    op.create_table(
        "payments_refund",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("payment_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["payment_id"], ["payments_payment.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_refund_payment", "payments_refund", ["payment_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_payments_refund_payment", table_name="payments_refund")
    op.drop_table("payments_refund")
    op.drop_table("payments_cheque_detail")
    op.drop_index("ix_payments_allocation_invoice", table_name="payments_allocation")
    op.drop_table("payments_allocation")
    op.drop_index("ix_payments_payment_date", table_name="payments_payment")
    op.drop_index("ix_payments_payment_tenant_status", table_name="payments_payment")
    op.drop_table("payments_payment")
    op.drop_index("ix_billing_invoice_item_invoice", table_name="billing_invoice_item")
    op.drop_table("billing_invoice_item")
    op.drop_index("ix_billing_invoice_subscription", table_name="billing_invoice")
    op.drop_index("ix_billing_invoice_tenant_status", table_name="billing_invoice")
    op.drop_table("billing_invoice")
    op.drop_index("ix_subscription_status_end", table_name="subscription")
    op.drop_index("ix_subscription_tenant_status", table_name="subscription")
    op.drop_table("subscription")
    op.drop_index("ix_currency_exchange_rate_pair", table_name="currency_exchange_rate")
    op.drop_table("currency_exchange_rate")
    op.drop_table("tenant_billing_profile")
