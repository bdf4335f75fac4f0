"""Brands, members, tiers, transactions and sync run history.

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "brands",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "suspended", "pending_approval", name="brand_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_brands_slug", "brands", ["slug"], unique=True)

    op.create_table(
        "membership_tiers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "deprecated", name="membership_tier_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("min_points_required", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("max_points_required", sa.Numeric(14, 2), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("benefits", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("brand_id", "slug", name="uq_membership_tiers_brand_slug"),
    )
    op.create_index("ix_membership_tiers_brand_id", "membership_tiers", ["brand_id"])

    op.create_table(
        "members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_user_id", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("points_balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total_points_earned", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("current_tier_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("tier_upgraded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("achievements", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["current_tier_id"], ["membership_tiers.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("brand_id", "external_user_id", name="uq_members_brand_external_user"),
        sa.CheckConstraint("points_balance >= 0", name="ck_members_points_balance_non_negative"),
    )
    op.create_index("ix_members_brand_id", "members", ["brand_id"])

    op.create_table(
        "tier_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("from_tier_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("to_tier_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("points_at_change", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_points_earned", sa.Numeric(14, 2), nullable=False),
        sa.Column("triggered_by", sa.String(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["from_tier_id"], ["membership_tiers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["to_tier_id"], ["membership_tiers.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_tier_history_member_id", "tier_history", ["member_id"])

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reference_id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column(
            "source",
            sa.Enum("external_sync", "wheel", "mission", "admin", name="transaction_source"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("points_delta", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column("provider_created_at", sa.String(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("brand_id", "reference_id", name="uq_transactions_brand_reference"),
    )
    op.create_index("ix_transactions_brand_id", "transactions", ["brand_id"])
    op.create_index("ix_transactions_member_created", "transactions", ["member_id", "created_at"])

    op.create_table(
        "sync_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_name", sa.String(), nullable=False, server_default="transaction_sync"),
        sa.Column("status", sa.String(), nullable=False, server_default="running"),
        sa.Column("triggered_by", sa.String(), nullable=False, server_default="scheduler"),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("brands_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sync_runs_started_at", "sync_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_sync_runs_started_at", table_name="sync_runs")
    op.drop_table("sync_runs")
    op.drop_index("ix_transactions_member_created", table_name="transactions")
    op.drop_index("ix_transactions_brand_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_tier_history_member_id", table_name="tier_history")
    op.drop_table("tier_history")
    op.drop_index("ix_members_brand_id", table_name="members")
    op.drop_table("members")
    op.drop_index("ix_membership_tiers_brand_id", table_name="membership_tiers")
    op.drop_table("membership_tiers")
    op.drop_index("ix_brands_slug", table_name="brands")
    op.drop_table("brands")
    sa.Enum(name="transaction_source").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="membership_tier_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="brand_status").drop(op.get_bind(), checkfirst=True)
