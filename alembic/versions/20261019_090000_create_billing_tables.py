"""Create subscriptions and anonymous_purchases tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


STATUS_VALUES = ("trial", "active", "past_due", "cancelled")


def upgrade() -> None:
    """Upgrade database schema."""

    # ------------------------------------------------------------------
    # 1. Enum type
    # ------------------------------------------------------------------
    status_enum = postgresql.ENUM(*STATUS_VALUES, name="subscription_status")
    status_enum.create(op.get_bind(), checkfirst=True)

    # ------------------------------------------------------------------
    # 2. subscriptions
    # ------------------------------------------------------------------
    op.create_table(
        "subscriptions",
        sa.Column("subscription_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(*STATUS_VALUES, name="subscription_status", create_type=False),
            nullable=False,
            server_default="trial",
        ),
        sa.Column("plan_type", sa.String(length=50), nullable=False, server_default="pro_annual"),
        sa.Column("billing_interval", sa.String(length=10), nullable=False, server_default="year"),
        sa.Column("gateway_token", sa.String(length=255), nullable=True),
        sa.Column("last_payment_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_data", postgresql.JSONB(), nullable=True),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="ZAR"),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", name="uq_subscriptions_user_id"),
        sa.UniqueConstraint("gateway_token", name="uq_subscriptions_gateway_token"),
    )
    op.create_index(
        "idx_subscriptions_user_token",
        "subscriptions",
        ["user_id", "gateway_token"],
    )
    op.create_index(
        "idx_subscriptions_status_period_end",
        "subscriptions",
        ["status", "current_period_end"],
    )
    op.create_index(
        "idx_subscriptions_cancelled_at",
        "subscriptions",
        ["cancelled_at"],
    )

    # ------------------------------------------------------------------
    # 3. anonymous_purchases
    # ------------------------------------------------------------------
    op.create_table(
        "anonymous_purchases",
        sa.Column("purchase_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("payment_reference", sa.String(length=255), nullable=True, unique=True),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=True),
        sa.Column("purchase_type", sa.String(length=50), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("gateway_data", postgresql.JSONB(), nullable=True),
        sa.Column("linked_user_id", sa.String(length=255), nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_anonymous_purchases_email",
        "anonymous_purchases",
        ["email"],
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_anonymous_purchases_email", table_name="anonymous_purchases")
    op.drop_table("anonymous_purchases")

    op.drop_index("idx_subscriptions_cancelled_at", table_name="subscriptions")
    op.drop_index("idx_subscriptions_status_period_end", table_name="subscriptions")
    op.drop_index("idx_subscriptions_user_token", table_name="subscriptions")
    op.drop_table("subscriptions")

    postgresql.ENUM(name="subscription_status").drop(op.get_bind(), checkfirst=True)
