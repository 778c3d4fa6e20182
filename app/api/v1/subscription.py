"""
Subscription API Endpoints
==========================

Handles subscription status and user-initiated cancellation.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Query

from app.dependencies import Coordinator, CurrentCaller, Repository
from app.models.subscription import Subscription
from app.schemas.subscription import (
    CancelRequest,
    CancelResponse,
    SubscriptionStatusResponse,
)
from app.services.cache import CacheInvalidator, CacheKeys, CacheManager
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def build_status_data(subscription: Optional[Subscription]) -> dict[str, Any]:
    """Summary of a subscription as returned by ``GET /status``."""
    if subscription is None:
        return {
            "status": "none",
            "has_access": False,
            "plan_type": None,
            "gateway_token": None,
            "amount_paid": None,
            "currency": None,
            "current_period_end": None,
            "cancelled_at": None,
            "cancel_at_period_end": False,
        }

    period_end = subscription.current_period_end
    has_access = subscription.is_active and (period_end is None or period_end > utc_now())

    return {
        "status": subscription.status.value,
        "has_access": has_access,
        "plan_type": subscription.plan_type,
        "gateway_token": subscription.gateway_token,
        "amount_paid": (
            str(subscription.amount_paid)
            if subscription.amount_paid is not None
            else None
        ),
        "currency": subscription.currency,
        "current_period_end": _isoformat(period_end),
        "cancelled_at": _isoformat(subscription.cancelled_at),
        "cancel_at_period_end": subscription.cancel_at_period_end,
    }


@router.get(
    "/status",
    response_model=SubscriptionStatusResponse,
)
async def get_subscription_status(
    caller: CurrentCaller,
    repository: Repository,
    force_refresh: bool = Query(default=False),
):
    """
    Get current subscription status.

    Use force_refresh=true to bypass the cache.
    """
    cache_key = CacheKeys.subscription_status(caller.user_id)

    if not force_refresh:
        cached = await CacheManager.get(cache_key)
        if cached:
            return SubscriptionStatusResponse(success=True, data=cached)

    subscription = await repository.get_for_user(caller.user_id)
    response_data = build_status_data(subscription)

    await CacheManager.set(cache_key, response_data, ttl=CacheManager.TTL_SHORT)

    return SubscriptionStatusResponse(success=True, data=response_data)


@router.post(
    "/cancel",
    response_model=CancelResponse,
    response_model_exclude_none=True,
)
async def cancel_subscription(
    cancel_data: CancelRequest,
    caller: CurrentCaller,
    coordinator: Coordinator,
):
    """
    Cancel a PayFast subscription.

    The subscription is marked cancelled locally even when PayFast does not
    confirm; ``warning`` is included in that case. Access continues until
    the end of the current billing period.
    """
    response = await coordinator.cancel(
        caller.user_id,
        cancel_data.subscription_token,
        cancel_data.reason,
    )

    await CacheInvalidator.on_subscription_change(caller.user_id)

    return response
