"""
Shared Test Fixtures
====================

- ``test_settings``: PayFast sandbox credentials used across tests
- ``repository``: in-memory ``SubscriptionRepository``
- ``payfast_responses``: queue of responses served to the PayFast client
- ``fake_redis``: dict-backed stand-in patched into the cache module
- ``client``: httpx client bound to the app with all of the above injected
"""

import json
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import AsyncMock, patch
from urllib.parse import urlencode

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings, get_settings
from app.core.errors import PersistenceError
from app.core.security import create_access_token
from app.core.signature import sign
from app.dependencies import get_payfast_client, get_subscription_repository
from app.main import app
from app.models.subscription import AnonymousPurchase, Subscription, SubscriptionStatus
from app.services.payfast import PayFastClient
from app.utils.helpers import utc_now

MERCHANT_ID = "10000100"
MERCHANT_KEY = "46f0cd694581a"
PASSPHRASE = "jt7NOE43FZPn"


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------

class InMemorySubscriptionRepository:
    """
    Dict-backed repository with the same upsert-by-user semantics as the
    PostgreSQL implementation. Set ``fail_writes`` to simulate a database
    outage.
    """

    def __init__(self):
        self.subscriptions: dict[str, Subscription] = {}
        self.anonymous_purchases: dict[str, AnonymousPurchase] = {}
        self.commits = 0
        self.rollbacks = 0
        self.fail_writes = False

    def _check_writable(self) -> None:
        if self.fail_writes:
            raise PersistenceError("database unavailable")

    async def upsert_subscription(
        self,
        *,
        user_id,
        gateway_token,
        payment_id,
        amount,
        gateway_data,
        plan_type,
        billing_interval,
        currency,
        period_start,
        period_end,
    ) -> Subscription:
        self._check_writable()
        subscription = self.subscriptions.get(user_id)
        if subscription is None:
            subscription = Subscription(
                subscription_id=uuid.uuid4(),
                user_id=user_id,
                started_at=period_start,
            )
            self.subscriptions[user_id] = subscription

        subscription.status = SubscriptionStatus.ACTIVE
        subscription.plan_type = plan_type
        subscription.billing_interval = billing_interval
        subscription.gateway_token = gateway_token
        subscription.last_payment_id = payment_id
        subscription.amount_paid = amount
        subscription.currency = currency
        subscription.gateway_data = gateway_data
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        subscription.cancelled_at = None
        subscription.cancel_at_period_end = False
        subscription.cancellation_reason = None
        return subscription

    async def insert_anonymous_purchase(
        self,
        *,
        email,
        payment_reference,
        amount,
        purchase_type,
        gateway_data,
    ) -> Optional[AnonymousPurchase]:
        self._check_writable()
        key = payment_reference or str(uuid.uuid4())
        if key in self.anonymous_purchases:
            return None
        purchase = AnonymousPurchase(
            purchase_id=uuid.uuid4(),
            email=email,
            payment_reference=payment_reference,
            amount_paid=amount,
            purchase_type=purchase_type,
            gateway_data=gateway_data,
        )
        self.anonymous_purchases[key] = purchase
        return purchase

    async def get_by_owner_and_token(self, user_id, gateway_token):
        subscription = self.subscriptions.get(user_id)
        if subscription is not None and subscription.gateway_token == gateway_token:
            return subscription
        return None

    async def get_by_token(self, gateway_token):
        for subscription in self.subscriptions.values():
            if subscription.gateway_token == gateway_token:
                return subscription
        return None

    async def get_for_user(self, user_id):
        return self.subscriptions.get(user_id)

    async def update_by_id(self, subscription_id, **values):
        self._check_writable()
        for subscription in self.subscriptions.values():
            if subscription.subscription_id == subscription_id:
                for key, value in values.items():
                    setattr(subscription, key, value)
                subscription.updated_at = utc_now()
                return subscription
        return None

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    # Test helper
    def add_active(self, user_id: str, token: str) -> Subscription:
        now = utc_now()
        subscription = Subscription(
            subscription_id=uuid.uuid4(),
            user_id=user_id,
            status=SubscriptionStatus.ACTIVE,
            plan_type="pro_annual",
            billing_interval="year",
            gateway_token=token,
            amount_paid=Decimal("99.00"),
            currency="ZAR",
            current_period_start=now,
            current_period_end=now + timedelta(days=365),
            started_at=now,
            cancel_at_period_end=False,
        )
        self.subscriptions[user_id] = subscription
        return subscription


class FakeRedis:
    """The handful of Redis commands the cache layer uses."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def signed_itn(passphrase: str = PASSPHRASE, **overrides: str) -> dict[str, str]:
    """A COMPLETE ITN for ``user-123`` with a valid signature."""
    params = {
        "m_payment_id": "PF_1755850869146_vh6uhgd53",
        "pf_payment_id": "2365783",
        "payment_status": "COMPLETE",
        "item_name": "Pro Plan - Annual Subscription",
        "amount_gross": "99.00",
        "amount_fee": "-2.28",
        "amount_net": "96.72",
        "custom_str1": "user-123",
        "custom_str2": "subscription_purchase",
        "name_first": "",
        "email_address": "test@example.com",
        "merchant_id": MERCHANT_ID,
        "token": "T1",
    }
    params.update(overrides)
    params["signature"] = sign(params, passphrase)
    return params


def form_body(params: dict[str, str]) -> str:
    return urlencode(params)


def auth_headers(user_id: str = "user-123") -> dict[str, str]:
    token = create_access_token({"sub": user_id, "email": f"{user_id}@example.com"})
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        ENVIRONMENT="testing",
        DEV_AUTH_DISABLED=False,
        PAYFAST_MERCHANT_ID=MERCHANT_ID,
        PAYFAST_MERCHANT_KEY=MERCHANT_KEY,
        PAYFAST_PASSPHRASE=PASSPHRASE,
        PAYFAST_SANDBOX=True,
        API_BASE_URL="https://api.example.com",
        FRONTEND_URL="https://app.example.com",
    )


@pytest.fixture
def repository() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def payfast_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def payfast_responses() -> list[Any]:
    """
    Responses served to the PayFast client, in order. Items are
    ``httpx.Response`` objects or exceptions to raise.
    """
    return []


@pytest.fixture
def payfast_client(test_settings, payfast_requests, payfast_responses) -> PayFastClient:
    def handler(request: httpx.Request) -> httpx.Response:
        payfast_requests.append(request)
        if not payfast_responses:
            return httpx.Response(200, json={"code": 200, "status": "success", "data": {"response": True}})
        item = payfast_responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PayFastClient(test_settings, http_client=http_client)


@pytest.fixture(autouse=True)
def fake_redis():
    redis = FakeRedis()
    with patch("app.services.cache.get_redis", AsyncMock(return_value=redis)):
        yield redis


@pytest_asyncio.fixture
async def client(test_settings, repository, payfast_client):
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_subscription_repository] = lambda: repository
    app.dependency_overrides[get_payfast_client] = lambda: payfast_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def cached_json(fake_redis: FakeRedis, key: str) -> Optional[dict]:
    raw = fake_redis.store.get(key)
    return json.loads(raw) if raw is not None else None
