"""
Subscription Repository
=======================

Persistence operations used by the subscription state machine and the
cancellation coordinator.

``SubscriptionRepository`` is the contract; ``SQLAlchemySubscriptionRepository``
implements it on PostgreSQL. Atomicity of concurrent webhook deliveries comes
from ``INSERT ... ON CONFLICT`` rather than from any application lock.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistenceError
from app.models.subscription import (
    AnonymousPurchase,
    Subscription,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class SubscriptionRepository(Protocol):
    """Storage contract for subscriptions and anonymous purchases."""

    async def upsert_subscription(
        self,
        *,
        user_id: str,
        gateway_token: Optional[str],
        payment_id: Optional[str],
        amount: Optional[Decimal],
        gateway_data: dict[str, Any],
        plan_type: str,
        billing_interval: str,
        currency: str,
        period_start: datetime,
        period_end: datetime,
    ) -> Subscription:
        """Activate the user's subscription, creating it if needed."""
        ...

    async def insert_anonymous_purchase(
        self,
        *,
        email: str,
        payment_reference: Optional[str],
        amount: Optional[Decimal],
        purchase_type: str,
        gateway_data: dict[str, Any],
    ) -> Optional[AnonymousPurchase]:
        """Store a payment without an account; None if already stored."""
        ...

    async def get_by_owner_and_token(
        self,
        user_id: str,
        gateway_token: str,
    ) -> Optional[Subscription]:
        ...

    async def get_by_token(self, gateway_token: str) -> Optional[Subscription]:
        ...

    async def get_for_user(self, user_id: str) -> Optional[Subscription]:
        ...

    async def update_by_id(
        self,
        subscription_id: uuid.UUID,
        **values: Any,
    ) -> Optional[Subscription]:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


def build_subscription_upsert(
    *,
    user_id: str,
    gateway_token: Optional[str],
    payment_id: Optional[str],
    amount: Optional[Decimal],
    gateway_data: dict[str, Any],
    plan_type: str,
    billing_interval: str,
    currency: str,
    period_start: datetime,
    period_end: datetime,
):
    """
    ``INSERT ... ON CONFLICT (user_id) DO UPDATE`` for a completed payment.

    ``started_at`` is only written on first insert. A renewal or a fresh
    agreement clears any earlier cancellation.
    """
    stmt = pg_insert(Subscription).values(
        subscription_id=uuid.uuid4(),
        user_id=user_id,
        status=SubscriptionStatus.ACTIVE,
        plan_type=plan_type,
        billing_interval=billing_interval,
        gateway_token=gateway_token,
        last_payment_id=payment_id,
        amount_paid=amount,
        currency=currency,
        gateway_data=gateway_data,
        current_period_start=period_start,
        current_period_end=period_end,
        started_at=period_start,
        cancel_at_period_end=False,
    )
    return stmt.on_conflict_do_update(
        index_elements=[Subscription.user_id],
        set_={
            "status": stmt.excluded.status,
            "plan_type": stmt.excluded.plan_type,
            "billing_interval": stmt.excluded.billing_interval,
            "gateway_token": stmt.excluded.gateway_token,
            "last_payment_id": stmt.excluded.last_payment_id,
            "amount_paid": stmt.excluded.amount_paid,
            "currency": stmt.excluded.currency,
            "gateway_data": stmt.excluded.gateway_data,
            "current_period_start": stmt.excluded.current_period_start,
            "current_period_end": stmt.excluded.current_period_end,
            "cancelled_at": None,
            "cancel_at_period_end": False,
            "cancellation_reason": None,
            "updated_at": func.now(),
        },
    ).returning(Subscription)


def build_anonymous_purchase_insert(
    *,
    email: str,
    payment_reference: Optional[str],
    amount: Optional[Decimal],
    purchase_type: str,
    gateway_data: dict[str, Any],
):
    """Insert that silently skips a payment reference seen before."""
    stmt = pg_insert(AnonymousPurchase).values(
        purchase_id=uuid.uuid4(),
        email=email,
        payment_reference=payment_reference,
        amount_paid=amount,
        purchase_type=purchase_type,
        gateway_data=gateway_data,
    )
    return stmt.on_conflict_do_nothing(
        index_elements=[AnonymousPurchase.payment_reference],
    ).returning(AnonymousPurchase)


class SQLAlchemySubscriptionRepository:
    """PostgreSQL implementation of ``SubscriptionRepository``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_subscription(self, **fields: Any) -> Subscription:
        stmt = build_subscription_upsert(**fields)
        try:
            result = await self.db.scalars(
                stmt,
                execution_options={"populate_existing": True},
            )
            return result.one()
        except SQLAlchemyError as exc:
            logger.error(
                "Subscription upsert failed: user=%s token=%s: %s",
                fields.get("user_id"),
                fields.get("gateway_token"),
                exc,
            )
            raise PersistenceError("subscription upsert failed") from exc

    async def insert_anonymous_purchase(self, **fields: Any) -> Optional[AnonymousPurchase]:
        stmt = build_anonymous_purchase_insert(**fields)
        try:
            result = await self.db.scalars(stmt)
            return result.one_or_none()
        except SQLAlchemyError as exc:
            logger.error(
                "Anonymous purchase insert failed: reference=%s: %s",
                fields.get("payment_reference"),
                exc,
            )
            raise PersistenceError("anonymous purchase insert failed") from exc

    async def _first(self, stmt) -> Optional[Subscription]:
        try:
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Subscription lookup failed: %s", exc)
            raise PersistenceError("subscription lookup failed") from exc

    async def get_by_owner_and_token(
        self,
        user_id: str,
        gateway_token: str,
    ) -> Optional[Subscription]:
        return await self._first(
            select(Subscription).where(
                Subscription.user_id == user_id,
                Subscription.gateway_token == gateway_token,
            )
        )

    async def get_by_token(self, gateway_token: str) -> Optional[Subscription]:
        return await self._first(
            select(Subscription).where(Subscription.gateway_token == gateway_token)
        )

    async def get_for_user(self, user_id: str) -> Optional[Subscription]:
        return await self._first(
            select(Subscription).where(Subscription.user_id == user_id)
        )

    async def update_by_id(
        self,
        subscription_id: uuid.UUID,
        **values: Any,
    ) -> Optional[Subscription]:
        stmt = (
            update(Subscription)
            .where(Subscription.subscription_id == subscription_id)
            .values(**values, updated_at=func.now())
            .returning(Subscription)
        )
        try:
            result = await self.db.scalars(
                stmt,
                execution_options={"populate_existing": True},
            )
            return result.one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Subscription update failed: id=%s: %s", subscription_id, exc)
            raise PersistenceError("subscription update failed") from exc

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            logger.error("Commit failed: %s", exc)
            raise PersistenceError("commit failed") from exc

    async def rollback(self) -> None:
        await self.db.rollback()
