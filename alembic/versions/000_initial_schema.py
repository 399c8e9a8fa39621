"""Initial database schema

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "000_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# industry is shared by several tables, so it is created once up front
industry_enum = postgresql.ENUM("solar", "pest", "roofing", "fiber", name="industry", create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _payable_columns() -> list[sa.Column]:
    return [
        sa.Column("industry", industry_enum, nullable=False),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("payroll_batch_id", sa.Integer(), sa.ForeignKey("payroll_batches.id"), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("allocated_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("rate_id", sa.Integer(), nullable=True),
        sa.Column("is_approved", sa.Boolean(), default=False, nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("is_paid", sa.Boolean(), default=False, nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create all initial tables."""
    industry_enum.create(op.get_bind(), checkfirst=True)

    # Rate catalog
    op.create_table(
        "commission_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("industry", industry_enum, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=True),
        sa.Column("installer_id", sa.Integer(), nullable=True),
        sa.Column("state_code", sa.String(2), nullable=True),
        sa.Column("percent_mp1", sa.Numeric(7, 4), nullable=True),
        sa.Column("flat_mp1", sa.Numeric(12, 2), nullable=True),
        sa.Column("percent_mp2", sa.Numeric(7, 4), nullable=True),
        sa.Column("flat_mp2", sa.Numeric(12, 2), nullable=True),
        sa.Column("effective_start", sa.Date(), nullable=False),
        sa.Column("effective_end", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_commission_rates_user_id", "commission_rates", ["user_id"])
    op.create_index("ix_commission_rates_lookup", "commission_rates", ["industry", "user_id", "is_active"])

    # Sales
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("address_line1", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state_code", sa.String(2), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("industry", industry_enum, nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "INSTALLED", "COMPLETED", "CANCELLED", "ON_HOLD", name="salestatus"),
            nullable=False,
        ),
        sa.Column("sale_date", sa.Date(), nullable=False),
        sa.Column("contract_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("installer_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sales_industry", "sales", ["industry"])
    op.create_index("ix_sales_status", "sales", ["status"])

    op.create_table(
        "sale_participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=True),
        sa.Column("split_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("is_primary", sa.Boolean(), default=False, nullable=False),
    )
    op.create_index("ix_sale_participants_sale_id", "sale_participants", ["sale_id"])
    op.create_index("ix_sale_participants_user_id", "sale_participants", ["user_id"])

    # Industry details, one row per sale
    op.create_table(
        "solar_sales",
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("system_size_kw", sa.Numeric(8, 3), nullable=True),
        sa.Column("system_sold_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("adder_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_or_lease", sa.String(20), nullable=True),
        sa.Column("install_date", sa.Date(), nullable=True),
    )
    op.create_table(
        "pest_sales",
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("service_type", sa.String(100), nullable=True),
        sa.Column("contract_length_months", sa.Integer(), nullable=True),
        sa.Column("initial_service_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("recurring_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("contract_total_value", sa.Numeric(12, 2), nullable=True),
    )
    op.create_table(
        "roofing_sales",
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("project_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("frontend_received_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("backend_received_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("completion_date", sa.Date(), nullable=True),
    )
    op.create_table(
        "fiber_sales",
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("isp", sa.String(100), nullable=True),
        sa.Column("fiber_plan", sa.String(100), nullable=True),
        sa.Column("install_date", sa.Date(), nullable=True),
    )

    # Reporting hierarchy
    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("manager_user_id", sa.Integer(), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_employees_user_id", "employees", ["user_id"], unique=True)
    op.create_index("ix_employees_manager_user_id", "employees", ["manager_user_id"])

    # Payroll batches
    op.create_table(
        "payroll_batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_name", sa.String(200), nullable=False),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "SUBMITTED", "APPROVED", "EXPORTED", "PAID", "CANCELLED", name="batchstatus"),
            nullable=False,
        ),
        sa.Column("pay_period_start", sa.Date(), nullable=False),
        sa.Column("pay_period_end", sa.Date(), nullable=False),
        sa.Column("pay_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("exported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exported_by", sa.Integer(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payroll_batches_status", "payroll_batches", ["status"])

    # Allocations
    op.create_table(
        "commission_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_payable_columns(),
        sa.Column("milestone_number", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "sale_id", "user_id", "milestone_number",
            name="uq_commission_allocations_sale_user_milestone",
        ),
    )
    op.create_table(
        "override_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_payable_columns(),
        sa.Column("override_level", sa.Integer(), nullable=False),
        sa.Column("source_user_id", sa.Integer(), nullable=True),
        sa.Column("milestone_number", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "sale_id", "user_id", "override_level",
            name="uq_override_allocations_sale_user_level",
        ),
    )
    for table in ("commission_allocations", "override_allocations"):
        for column in ("industry", "sale_id", "payroll_batch_id", "user_id"):
            op.create_index(f"ix_{table}_{column}", table, [column])

    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.Enum(
            "create_rate", "update_rate", "deactivate_rate",
            "save_allocations", "approve_allocation", "approve_override",
            "create_batch", "update_batch", "add_to_batch", "remove_from_batch",
            "transition_batch", "cancel_sale",
            name="auditaction",
        ), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("action_metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_target", "audit_logs", ["target_type", "target_id"])


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("audit_logs")
    op.drop_table("override_allocations")
    op.drop_table("commission_allocations")
    op.drop_table("payroll_batches")
    op.drop_table("employees")
    op.drop_table("fiber_sales")
    op.drop_table("roofing_sales")
    op.drop_table("pest_sales")
    op.drop_table("solar_sales")
    op.drop_table("sale_participants")
    op.drop_table("sales")
    op.drop_table("customers")
    op.drop_table("commission_rates")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS auditaction")
    op.execute("DROP TYPE IF EXISTS batchstatus")
    op.execute("DROP TYPE IF EXISTS salestatus")
    op.execute("DROP TYPE IF EXISTS industry")
