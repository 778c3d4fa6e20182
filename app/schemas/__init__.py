"""
Pydantic Schemas
================

Request/response schemas for API validation.
"""

from app.schemas.subscription import (
    CancelRequest,
    CancelResponse,
    CheckoutRequest,
    CheckoutResponse,
    SubscriptionStatusResponse,
)
from app.schemas.webhook import PayFastPaymentStatus, WebhookEvent

__all__ = [
    "CancelRequest",
    "CancelResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "PayFastPaymentStatus",
    "SubscriptionStatusResponse",
    "WebhookEvent",
]
