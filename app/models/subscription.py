"""
Subscription Models
===================

SQLAlchemy models for PayFast subscriptions and purchases that are not yet
linked to an account.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class SubscriptionStatus(str, Enum):
    """Subscription status values."""
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Subscription(Base, TimestampMixin):
    """
    Recurring-billing agreement between one user and PayFast.

    One row per user. The row is never deleted, only transitioned, and its
    ``gateway_token`` is replaced when a new agreement is activated.
    """

    __tablename__ = "subscriptions"

    # Primary Key
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Identity subject from the auth service
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Subscription details
    status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(
            SubscriptionStatus,
            name="subscription_status",
            values_callable=_enum_values,
        ),
        default=SubscriptionStatus.TRIAL,
        nullable=False,
    )
    plan_type: Mapped[str] = mapped_column(
        String(50),
        default="pro_annual",
        nullable=False,
    )
    billing_interval: Mapped[str] = mapped_column(
        String(10),
        default="year",
        nullable=False,
    )

    # PayFast Integration Fields
    gateway_token: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    last_payment_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    gateway_data: Mapped[Optional[dict]] = mapped_column(
        JSONB,
        nullable=True,
    )

    # Payment
    amount_paid: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        default="ZAR",
        nullable=False,
    )

    # Billing periods
    current_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_subscriptions_user_id"),
        UniqueConstraint("gateway_token", name="uq_subscriptions_gateway_token"),
        Index("idx_subscriptions_user_token", "user_id", "gateway_token"),
        Index("idx_subscriptions_status_period_end", "status", "current_period_end"),
        Index("idx_subscriptions_cancelled_at", "cancelled_at"),
    )

    def __repr__(self) -> str:
        return f"<Subscription(user_id={self.user_id}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        """Check if the subscription is in a paying or trial state."""
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL)


class AnonymousPurchase(Base, TimestampMixin):
    """
    Completed payment that is not linked to an account yet.

    Created from an ITN and keyed by the purchaser's e-mail. Linking it to a
    user happens elsewhere; this service never mutates it after insert.
    """

    __tablename__ = "anonymous_purchases"

    purchase_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        index=True,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    amount_paid: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )
    purchase_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    paid_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    gateway_data: Mapped[Optional[dict]] = mapped_column(
        JSONB,
        nullable=True,
    )

    # Written by the account-linking service
    linked_user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    linked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AnonymousPurchase(email={self.email}, reference={self.payment_reference})>"
