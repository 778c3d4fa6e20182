"""
Webhooks API Endpoints
======================

Handles Instant Transaction Notifications (ITN) from PayFast.

Authentication:
    PayFast signs each notification with an MD5 digest over the posted
    fields plus the shared passphrase. The merchant id must also match ours.

Responses:
    Plain text only. 400 for anything we refuse to trust, 500 when the
    database write failed (PayFast retries), 200 ``OK`` otherwise, including
    for events that require no change.
"""

import logging

import newrelic.agent
from fastapi import APIRouter, Request, status
from fastapi.responses import PlainTextResponse

from app.core.errors import PersistenceError
from app.dependencies import SignatureVerifier, StateMachine
from app.schemas.webhook import WebhookEvent
from app.services.cache import CacheInvalidator

logger = logging.getLogger(__name__)

router = APIRouter()


def _reject(reason: str, request: Request, event: WebhookEvent | None = None) -> PlainTextResponse:
    """Log a refused notification and build the 400 reply."""
    client = request.client.host if request.client else "unknown"
    logger.warning(
        "PayFast webhook rejected: reason=%s client=%s payment=%s",
        reason,
        client,
        event.payment_id if event is not None else None,
    )
    newrelic.agent.record_custom_event(
        "PayFastWebhookRejected",
        {
            "reason": reason,
            "client_ip": client,
            "payment_id": event.payment_id if event is not None else "",
        },
    )
    return PlainTextResponse(reason, status_code=status.HTTP_400_BAD_REQUEST)


@router.post("/payfast", response_class=PlainTextResponse)
async def payfast_webhook(
    request: Request,
    verifier: SignatureVerifier,
    state_machine: StateMachine,
):
    """
    Handle a PayFast ITN.

    Checks, in order: merchant id, signature, purchaser identifier. Only a
    notification passing all three reaches the subscription state machine.
    """
    # ── Parse payload ─────────────────────────────────────────────────────
    try:
        body = await request.body()
        event = WebhookEvent.from_form_body(body)
    except (UnicodeDecodeError, ValueError) as e:
        logger.error("Invalid PayFast webhook payload: %s", e)
        return _reject("Invalid payload", request)

    logger.info(
        "PayFast webhook received: status=%s payment=%s token=%s",
        event.payment_status,
        event.payment_id,
        event.token,
    )
    logger.debug("PayFast webhook payload: %s", event.redacted())

    # ── Verify origin ─────────────────────────────────────────────────────
    if not verifier.merchant_matches(event.params):
        return _reject("Invalid merchant", request, event)

    if not verifier.signature_matches(event.params):
        return _reject("Invalid signature", request, event)

    if event.purchaser is None:
        return _reject("Missing user identifier", request, event)

    # ── Process event ─────────────────────────────────────────────────────
    try:
        result = await state_machine.apply(event)
    except PersistenceError:
        logger.exception(
            "PayFast webhook processing error: status=%s payment=%s",
            event.payment_status,
            event.payment_id,
        )
        await state_machine.repository.rollback()
        # Return 500 so PayFast will retry
        return PlainTextResponse(
            "Database error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if result.changed and result.user_id:
        await CacheInvalidator.on_subscription_change(result.user_id)

    logger.info(
        "PayFast webhook processed: status=%s payment=%s action=%s",
        event.payment_status,
        event.payment_id,
        result.action.value,
    )

    return PlainTextResponse("OK")
