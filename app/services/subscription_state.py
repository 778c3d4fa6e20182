"""
Subscription State Machine
==========================

Applies verified PayFast ITN events to local subscription state.

Handles:
- COMPLETE for signed-in purchasers (first purchase and renewal)
- COMPLETE for anonymous purchasers (stored for later account linking)
- CANCELLED and FAILED lifecycle events correlated by subscription token

Every transition is safe to replay. Events are not reordered: a late
COMPLETE arriving after a CANCELLED re-activates the subscription.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.config import Settings
from app.db.repository import SubscriptionRepository
from app.models.subscription import Subscription, SubscriptionStatus
from app.schemas.webhook import PayFastPaymentStatus, WebhookEvent
from app.utils.helpers import add_billing_interval, parse_amount, utc_now

logger = logging.getLogger(__name__)

DEFAULT_ANONYMOUS_PURCHASE_TYPE = "anonymous_subscription"


class TransitionAction(str, Enum):
    """What applying an event did."""
    ACTIVATED = "activated"
    ANONYMOUS_RECORDED = "anonymous_recorded"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    IGNORED = "ignored"


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of one ``SubscriptionStateMachine.apply`` call."""

    action: TransitionAction
    user_id: Optional[str] = None
    subscription: Optional[Subscription] = None

    @property
    def changed(self) -> bool:
        return self.action is not TransitionAction.IGNORED


class SubscriptionStateMachine:
    """Maps (payment_status, purchaser classification) to a state change."""

    def __init__(self, repository: SubscriptionRepository, settings: Settings):
        self.repository = repository
        self.settings = settings

    async def apply(self, event: WebhookEvent) -> TransitionResult:
        """
        Apply a verified event and commit the result.

        Args:
            event: ITN whose merchant, signature and purchaser have already
                been checked by the ingestion handler.

        Returns:
            TransitionResult describing the change, ``IGNORED`` for
            recognized no-ops and unknown statuses.

        Raises:
            PersistenceError: the repository failed; nothing was committed.
        """
        status = event.payment_status

        if status == PayFastPaymentStatus.COMPLETE.value:
            if event.is_identified:
                result = await self._activate(event)
            else:
                result = await self._record_anonymous(event)
        elif status == PayFastPaymentStatus.CANCELLED.value:
            result = await self._cancel(event)
        elif status == PayFastPaymentStatus.FAILED.value:
            result = await self._mark_past_due(event)
        else:
            logger.info(
                "Ignoring ITN with payment_status=%s payment=%s",
                status,
                event.payment_id,
            )
            return TransitionResult(action=TransitionAction.IGNORED)

        if result.changed:
            await self.repository.commit()

        return result

    # -------------------------------------------------------------------------
    # COMPLETE
    # -------------------------------------------------------------------------

    async def _activate(self, event: WebhookEvent) -> TransitionResult:
        user_id = event.purchaser
        period_start = utc_now()
        period_end = add_billing_interval(
            period_start, self.settings.SUBSCRIPTION_BILLING_INTERVAL
        )

        subscription = await self.repository.upsert_subscription(
            user_id=user_id,
            gateway_token=event.token,
            payment_id=event.payment_id,
            amount=parse_amount(event.amount_gross),
            gateway_data=dict(event.params),
            plan_type=self.settings.SUBSCRIPTION_PLAN_TYPE,
            billing_interval=self.settings.SUBSCRIPTION_BILLING_INTERVAL,
            currency=self.settings.SUBSCRIPTION_CURRENCY,
            period_start=period_start,
            period_end=period_end,
        )

        logger.info(
            "Subscription activated: user=%s token=%s payment=%s period_end=%s",
            user_id,
            event.token,
            event.payment_id,
            period_end.isoformat(),
        )
        return TransitionResult(
            action=TransitionAction.ACTIVATED,
            user_id=user_id,
            subscription=subscription,
        )

    async def _record_anonymous(self, event: WebhookEvent) -> TransitionResult:
        email = event.purchaser
        purchase = await self.repository.insert_anonymous_purchase(
            email=email,
            payment_reference=event.payment_id,
            amount=parse_amount(event.amount_gross),
            purchase_type=event.classification or DEFAULT_ANONYMOUS_PURCHASE_TYPE,
            gateway_data=dict(event.params),
        )

        if purchase is None:
            logger.info(
                "Anonymous purchase already recorded: payment=%s",
                event.payment_id,
            )
            return TransitionResult(action=TransitionAction.IGNORED)

        logger.info(
            "Anonymous purchase recorded: email=%s payment=%s",
            email,
            event.payment_id,
        )
        return TransitionResult(action=TransitionAction.ANONYMOUS_RECORDED)

    # -------------------------------------------------------------------------
    # CANCELLED / FAILED
    # -------------------------------------------------------------------------

    async def _lifecycle_target(self, event: WebhookEvent) -> Optional[Subscription]:
        """Subscription a CANCELLED/FAILED event refers to, if any."""
        if not event.is_identified:
            logger.info(
                "Ignoring %s ITN for anonymous purchaser: payment=%s",
                event.payment_status,
                event.payment_id,
            )
            return None

        if event.token is None:
            logger.warning(
                "%s ITN without subscription token: user=%s",
                event.payment_status,
                event.purchaser,
            )
            return None

        subscription = await self.repository.get_by_token(event.token)
        if subscription is None:
            logger.warning(
                "%s ITN for unknown subscription token %s",
                event.payment_status,
                event.token,
            )
        return subscription

    async def _cancel(self, event: WebhookEvent) -> TransitionResult:
        subscription = await self._lifecycle_target(event)
        if subscription is None:
            return TransitionResult(action=TransitionAction.IGNORED)

        if subscription.status == SubscriptionStatus.CANCELLED:
            logger.info(
                "Subscription already cancelled: user=%s token=%s",
                subscription.user_id,
                event.token,
            )
            return TransitionResult(
                action=TransitionAction.IGNORED,
                user_id=subscription.user_id,
                subscription=subscription,
            )

        updated = await self.repository.update_by_id(
            subscription.subscription_id,
            status=SubscriptionStatus.CANCELLED,
            cancelled_at=utc_now(),
            cancel_at_period_end=True,
            gateway_data=dict(event.params),
        )

        logger.info(
            "Subscription cancelled by gateway: user=%s token=%s",
            subscription.user_id,
            event.token,
        )
        return TransitionResult(
            action=TransitionAction.CANCELLED,
            user_id=subscription.user_id,
            subscription=updated,
        )

    async def _mark_past_due(self, event: WebhookEvent) -> TransitionResult:
        subscription = await self._lifecycle_target(event)
        if subscription is None:
            return TransitionResult(action=TransitionAction.IGNORED)

        updated = await self.repository.update_by_id(
            subscription.subscription_id,
            status=SubscriptionStatus.PAST_DUE,
            gateway_data=dict(event.params),
        )

        logger.warning(
            "Subscription payment failed: user=%s token=%s payment=%s",
            subscription.user_id,
            event.token,
            event.payment_id,
        )
        return TransitionResult(
            action=TransitionAction.PAST_DUE,
            user_id=subscription.user_id,
            subscription=updated,
        )
