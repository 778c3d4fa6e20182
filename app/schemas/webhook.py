"""
Webhook Schemas
===============

PayFast ITN payload wrapper.
"""

from enum import Enum
from typing import Optional
from urllib.parse import parse_qsl

from pydantic import BaseModel, Field


class PayFastPaymentStatus(str, Enum):
    """ITN ``payment_status`` values the state machine acts on."""

    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


# custom_str2 value set at checkout for signed-in purchasers
IDENTIFIED_PURCHASE = "subscription_purchase"


class WebhookEvent(BaseModel):
    """
    One inbound ITN.

    Holds the complete form parameter map; every field, recognized or not,
    is kept verbatim because all of them take part in the signature and the
    raw payload is stored alongside the subscription.
    """

    params: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_form_body(cls, body: bytes) -> "WebhookEvent":
        """
        Parse an ``application/x-www-form-urlencoded`` body.

        Blank values are kept so the map mirrors exactly what PayFast sent.
        Raises ``UnicodeDecodeError`` / ``ValueError`` on malformed input.
        """
        text = body.decode("utf-8")
        pairs = parse_qsl(text, keep_blank_values=True, strict_parsing=False)
        return cls(params=dict(pairs))

    def _get(self, key: str) -> Optional[str]:
        value = self.params.get(key)
        if value is None or not value.strip():
            return None
        return value

    @property
    def merchant_id(self) -> Optional[str]:
        return self._get("merchant_id")

    @property
    def signature(self) -> Optional[str]:
        return self._get("signature")

    @property
    def payment_status(self) -> Optional[str]:
        return self._get("payment_status")

    @property
    def token(self) -> Optional[str]:
        """PayFast subscription token correlating later lifecycle events."""
        return self._get("token")

    @property
    def payment_id(self) -> Optional[str]:
        return self._get("pf_payment_id")

    @property
    def amount_gross(self) -> Optional[str]:
        return self._get("amount_gross")

    @property
    def purchaser(self) -> Optional[str]:
        """User id for signed-in purchases, e-mail for anonymous ones."""
        return self._get("custom_str1")

    @property
    def classification(self) -> Optional[str]:
        return self._get("custom_str2")

    @property
    def is_identified(self) -> bool:
        return self.classification == IDENTIFIED_PURCHASE

    def redacted(self) -> dict[str, str]:
        """Params safe to put in logs."""
        return {k: v for k, v in self.params.items() if k != "signature"}
