"""
PayFast Service
===============

Outbound integration with PayFast.

Handles:
- Subscription cancellation via the PayFast REST API
- Signed checkout forms for the hosted payment page
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import httpx

from app.config import Settings
from app.core.signature import canonicalize_ordered, digest
from app.schemas.webhook import IDENTIFIED_PURCHASE
from app.utils.helpers import generate_payment_reference

logger = logging.getLogger(__name__)

# PayFast signs checkout forms in its documented field order, not alphabetically
CHECKOUT_FIELD_ORDER = (
    "merchant_id", "merchant_key", "return_url", "cancel_url", "notify_url",
    "name_first", "name_last", "email_address", "cell_number",
    "m_payment_id", "amount", "item_name", "item_description",
    "custom_int1", "custom_int2", "custom_int3", "custom_int4", "custom_int5",
    "custom_str1", "custom_str2", "custom_str3", "custom_str4", "custom_str5",
    "email_confirmation", "confirmation_address", "payment_method",
    "subscription_type", "billing_date", "recurring_amount", "frequency", "cycles",
)

# PayFast recurring billing frequency codes
BILLING_FREQUENCY = {
    "month": "3",
    "year": "6",
}


@dataclass(frozen=True)
class GatewayCancellation:
    """Outcome of asking PayFast to cancel a subscription."""

    confirmed: bool
    status_code: Optional[int] = None
    payload: Optional[Any] = None
    error: Optional[str] = None


class PayFastClient:
    """Client for PayFast operations."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.base_url = settings.PAYFAST_API_URL.rstrip("/")
        self.timeout = settings.PAYFAST_API_TIMEOUT_SECONDS
        self._http_client = http_client

    # -------------------------------------------------------------------------
    # PayFast REST API
    # -------------------------------------------------------------------------

    def _get_headers(self) -> dict[str, str]:
        """Common headers for PayFast API calls."""
        return {
            "Content-Type": "application/json",
            "Merchant-Id": self.settings.PAYFAST_MERCHANT_ID,
            "Passphrase": self.settings.PAYFAST_PASSPHRASE,
        }

    def cancellation_url(self, token: str) -> str:
        url = f"{self.base_url}/subscriptions/{token}/cancel"
        if self.settings.PAYFAST_SANDBOX:
            url += "?testing=true"
        return url

    async def _post(self, url: str) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(
                url, headers=self._get_headers(), json={}, timeout=self.timeout
            )
        async with httpx.AsyncClient() as client:
            return await client.post(
                url, headers=self._get_headers(), json={}, timeout=self.timeout
            )

    async def cancel_subscription(self, token: str) -> GatewayCancellation:
        """
        Ask PayFast to stop billing a subscription.

        Never raises: timeouts, transport errors and unexpected responses
        come back as an unconfirmed result, because the caller commits the
        local cancellation regardless.

        Args:
            token: PayFast subscription token.

        Returns:
            GatewayCancellation; ``confirmed`` is True only for a 2xx that
            is either a plain 200 or carries ``{"response": true}``.
        """
        url = self.cancellation_url(token)
        logger.info(
            "Calling PayFast cancellation API: token=%s sandbox=%s",
            token,
            self.settings.PAYFAST_SANDBOX,
        )

        try:
            response = await self._post(url)
        except httpx.TimeoutException:
            logger.error("PayFast cancellation timeout for token %s", token)
            return GatewayCancellation(confirmed=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error("PayFast cancellation error for token %s: %s", token, e)
            return GatewayCancellation(confirmed=False, error=str(e))

        try:
            payload = response.json()
        except ValueError:
            payload = None
            logger.info(
                "PayFast cancellation response (no JSON): %s",
                response.text[:200],
            )

        response_flag = isinstance(payload, dict) and payload.get("response") is True
        confirmed = response.is_success and (
            response.status_code == 200 or response_flag
        )

        if confirmed:
            logger.info("PayFast confirmed cancellation for token %s", token)
        else:
            logger.warning(
                "PayFast cancellation unconfirmed for token %s: status=%d body=%s",
                token,
                response.status_code,
                response.text[:200],
            )

        return GatewayCancellation(
            confirmed=confirmed,
            status_code=response.status_code,
            payload=payload,
        )

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    def build_checkout_form(
        self,
        *,
        user_id: str,
        email_address: Optional[str] = None,
        name_first: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Build the signed subscription form for PayFast's hosted page.

        ``custom_str1``/``custom_str2`` carry the purchaser identity and
        classification back to us in every ITN for this agreement.

        Returns:
            ``{"process_url": ..., "fields": {...}}`` with ``signature``
            as the last field.
        """
        s = self.settings
        base = s.FRONTEND_URL.rstrip("/")
        amount = str(Decimal(s.SUBSCRIPTION_PRICE).quantize(Decimal("0.01")))

        candidate = {
            "merchant_id": s.PAYFAST_MERCHANT_ID,
            "merchant_key": s.PAYFAST_MERCHANT_KEY,
            "return_url": f"{base}/payment/success",
            "cancel_url": f"{base}/payment/cancelled",
            "notify_url": s.payfast_notify_url,
            "name_first": (name_first or "").strip(),
            "email_address": (email_address or "").strip(),
            "m_payment_id": generate_payment_reference(),
            "amount": amount,
            "item_name": s.SUBSCRIPTION_PLAN_NAME,
            "item_description": s.SUBSCRIPTION_PLAN_NAME,
            "custom_str1": user_id,
            "custom_str2": IDENTIFIED_PURCHASE,
            "subscription_type": "1",
            "recurring_amount": amount,
            "frequency": BILLING_FREQUENCY[s.SUBSCRIPTION_BILLING_INTERVAL],
            "cycles": "0",
        }

        fields = {
            key: candidate[key]
            for key in CHECKOUT_FIELD_ORDER
            if key in candidate and candidate[key].strip()
        }
        signature_base = canonicalize_ordered(fields.items(), s.PAYFAST_PASSPHRASE)
        fields["signature"] = digest(signature_base.encode("utf-8"))

        logger.info(
            "Built PayFast checkout: user=%s payment=%s",
            user_id,
            fields["m_payment_id"],
        )

        return {
            "process_url": s.payfast_process_url,
            "fields": fields,
        }
