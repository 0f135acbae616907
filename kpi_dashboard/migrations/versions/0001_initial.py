"""Initial schema for the KPI dashboard."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("display_order", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "kpis",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=True),
        sa.Column("data_type", sa.String(length=32), nullable=False, server_default="numeric"),
        sa.Column("benchmark_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("has_platform_split", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_kpis_code_active", "kpis", ["code", "is_active"])
    op.create_index("ix_kpis_category", "kpis", ["category_id"])

    op.create_table(
        "kpi_values",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kpi_id", sa.Integer(), sa.ForeignKey("kpis.id"), nullable=False),
        sa.Column("date_value", sa.Date(), nullable=False),
        sa.Column("android_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("ios_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("net_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("data_source", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("kpi_id", "date_value", name="uq_kpi_values_kpi_date"),
    )
    op.create_index("ix_kpi_values_date", "kpi_values", ["date_value"])

    op.create_table(
        "new_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.String(length=128), nullable=True),
        sa.Column("original_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("local_currency", sa.String(length=8), nullable=True),
        sa.Column("local_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("plan_type", sa.String(length=64), nullable=True),
        sa.Column("device_type", sa.Integer(), nullable=True),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=True),
        sa.Column("premium_started_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("premium_ends_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ad_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_new_transactions_created_at", "new_transactions", ["created_at"])
    op.create_index("ix_new_transactions_user", "new_transactions", ["user_id"])

    op.create_table(
        "activity_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
    )

    op.create_table(
        "app_activities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("activity_type", sa.Integer(), sa.ForeignKey("activity_types.id"), nullable=True),
        sa.Column("category", sa.String(length=128), nullable=True),
    )

    op.create_table(
        "user_completed_activities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "activity_id",
            sa.Integer(),
            sa.ForeignKey("app_activities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_completions_activity_date", "user_completed_activities", ["activity_id", "completion_date"]
    )


def downgrade() -> None:
    op.drop_index("ix_completions_activity_date", table_name="user_completed_activities")
    op.drop_table("user_completed_activities")
    op.drop_table("app_activities")
    op.drop_table("activity_types")

    op.drop_index("ix_new_transactions_user", table_name="new_transactions")
    op.drop_index("ix_new_transactions_created_at", table_name="new_transactions")
    op.drop_table("new_transactions")

    op.drop_index("ix_kpi_values_date", table_name="kpi_values")
    op.drop_table("kpi_values")

    op.drop_index("ix_kpis_category", table_name="kpis")
    op.drop_index("ix_kpis_code_active", table_name="kpis")
    op.drop_table("kpis")

    op.drop_table("categories")
