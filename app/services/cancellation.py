"""
Cancellation Coordinator
========================

User-initiated subscription cancellation.

The local record is always moved to ``cancelled`` once ownership is
confirmed, whether or not PayFast acknowledges the upstream request. An
unconfirmed upstream call is reported back to the caller as a warning.
"""

import logging
from typing import Optional, Protocol

from fastapi import status

from app.core.errors import AppException, ErrorCodes, NotFoundError, PersistenceError
from app.db.repository import SubscriptionRepository
from app.models.subscription import SubscriptionStatus
from app.schemas.subscription import CancelResponse
from app.services.payfast import GatewayCancellation
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "User requested cancellation"

CONFIRMED_MESSAGE = "Subscription cancelled successfully"
CONFIRMED_DETAILS = (
    "Your subscription has been cancelled and will not renew. You'll continue "
    "to have access until the end of your current billing period."
)
UNCONFIRMED_MESSAGE = "Subscription cancellation initiated"
UNCONFIRMED_DETAILS = (
    "Your cancellation has been processed locally. PayFast will confirm via "
    "email shortly."
)
UNCONFIRMED_WARNING = (
    "PayFast API response was unclear, but your subscription has been marked "
    "as cancelled in our system."
)


class CancellationGateway(Protocol):
    """Upstream side of a cancellation."""

    async def cancel_subscription(self, token: str) -> GatewayCancellation:
        ...


class CancellationCoordinator:
    """Cancels a caller's subscription locally and at PayFast."""

    def __init__(
        self,
        repository: SubscriptionRepository,
        gateway: CancellationGateway,
    ):
        self.repository = repository
        self.gateway = gateway

    async def cancel(
        self,
        user_id: str,
        token: str,
        reason: Optional[str] = None,
    ) -> CancelResponse:
        """
        Cancel the caller's active subscription identified by ``token``.

        Args:
            user_id: Authenticated caller.
            token: PayFast subscription token from the request body.
            reason: Free-text reason; a default is stored when omitted.

        Returns:
            CancelResponse, with ``warning`` set when PayFast did not confirm.

        Raises:
            NotFoundError: no active subscription with this token belongs
                to the caller.
            AppException: the local update could not be committed.
        """
        subscription = await self.repository.get_by_owner_and_token(user_id, token)

        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            logger.info(
                "Cancellation rejected: user=%s token=%s status=%s",
                user_id,
                token,
                subscription.status.value if subscription is not None else None,
            )
            raise NotFoundError(
                code=ErrorCodes.SUB_NOT_FOUND,
                message="Subscription not found or already cancelled",
            )

        upstream = await self._cancel_upstream(token)

        try:
            await self.repository.update_by_id(
                subscription.subscription_id,
                status=SubscriptionStatus.CANCELLED,
                cancelled_at=utc_now(),
                cancellation_reason=(reason or "").strip() or DEFAULT_CANCELLATION_REASON,
                cancel_at_period_end=True,
            )
            await self.repository.commit()
        except PersistenceError:
            await self.repository.rollback()
            logger.error(
                "Local cancellation failed: user=%s token=%s upstream_confirmed=%s",
                user_id,
                token,
                upstream.confirmed,
            )
            raise AppException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                code=ErrorCodes.SUB_CANCEL_FAILED,
                message="Failed to update subscription status",
            )

        logger.info(
            "Subscription cancelled: user=%s token=%s upstream_confirmed=%s",
            user_id,
            token,
            upstream.confirmed,
        )

        if upstream.confirmed:
            return CancelResponse(
                message=CONFIRMED_MESSAGE,
                details=CONFIRMED_DETAILS,
            )

        return CancelResponse(
            message=UNCONFIRMED_MESSAGE,
            details=UNCONFIRMED_DETAILS,
            warning=UNCONFIRMED_WARNING,
        )

    async def _cancel_upstream(self, token: str) -> GatewayCancellation:
        """Gateway call that never fails the local cancellation."""
        try:
            return await self.gateway.cancel_subscription(token)
        except Exception as e:
            logger.error("PayFast cancellation raised for token %s: %s", token, e)
            return GatewayCancellation(confirmed=False, error=str(e))
