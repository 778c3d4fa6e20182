"""
Subscription Repository Tests
=============================

Checks the SQL emitted for the concurrent-safe writes, and error wrapping
in the SQLAlchemy repository.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
import uuid

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.core.errors import PersistenceError
from app.db.repository import (
    SQLAlchemySubscriptionRepository,
    SubscriptionRepository,
    build_anonymous_purchase_insert,
    build_subscription_upsert,
)

PERIOD_START = datetime(2026, 1, 31, tzinfo=timezone.utc)
PERIOD_END = datetime(2027, 1, 31, tzinfo=timezone.utc)


def _compile(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _upsert_fields() -> dict:
    return dict(
        user_id="user-123",
        gateway_token="T1",
        payment_id="2365783",
        amount=Decimal("99.00"),
        gateway_data={"token": "T1"},
        plan_type="pro_annual",
        billing_interval="year",
        currency="ZAR",
        period_start=PERIOD_START,
        period_end=PERIOD_END,
    )


class TestStatements:

    def test_upsert_conflicts_on_user(self):
        sql = _compile(build_subscription_upsert(**_upsert_fields()))

        assert "INSERT INTO subscriptions" in sql
        assert "ON CONFLICT (user_id) DO UPDATE" in sql
        assert "RETURNING" in sql

    def test_upsert_clears_cancellation(self):
        sql = _compile(build_subscription_upsert(**_upsert_fields()))
        update_clause = sql.split("DO UPDATE SET", 1)[1].split("RETURNING", 1)[0]

        assert "cancelled_at" in update_clause
        assert "cancellation_reason" in update_clause
        assert "gateway_token = excluded.gateway_token" in update_clause
        assert "started_at" not in update_clause

    def test_anonymous_insert_ignores_duplicates(self):
        sql = _compile(
            build_anonymous_purchase_insert(
                email="buyer@example.com",
                payment_reference="2365783",
                amount=Decimal("99.00"),
                purchase_type="anonymous_subscription",
                gateway_data={},
            )
        )

        assert "INSERT INTO anonymous_purchases" in sql
        assert "ON CONFLICT (payment_reference) DO NOTHING" in sql


class TestSQLAlchemySubscriptionRepository:

    def test_satisfies_protocol(self):
        assert isinstance(SQLAlchemySubscriptionRepository(MagicMock()), SubscriptionRepository)

    @pytest.mark.asyncio
    async def test_upsert_error_wrapped(self):
        db = MagicMock()
        db.scalars = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down")))

        with pytest.raises(PersistenceError):
            await SQLAlchemySubscriptionRepository(db).upsert_subscription(**_upsert_fields())

    @pytest.mark.asyncio
    async def test_lookup_error_wrapped(self):
        db = MagicMock()
        db.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(PersistenceError):
            await SQLAlchemySubscriptionRepository(db).get_by_token("T1")

    @pytest.mark.asyncio
    async def test_commit_error_wrapped(self):
        db = MagicMock()
        db.commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("down")))

        with pytest.raises(PersistenceError):
            await SQLAlchemySubscriptionRepository(db).commit()

    @pytest.mark.asyncio
    async def test_update_returns_row(self):
        row = object()
        result = MagicMock()
        result.one_or_none.return_value = row
        db = MagicMock()
        db.scalars = AsyncMock(return_value=result)

        updated = await SQLAlchemySubscriptionRepository(db).update_by_id(
            uuid.uuid4(),
            cancellation_reason="test",
        )

        assert updated is row
        db.scalars.assert_awaited_once()
