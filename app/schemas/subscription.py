"""
Subscription Schemas
====================

Pydantic schemas for subscription management and checkout endpoints.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CancelRequest(BaseModel):
    """Request schema for subscription cancellation."""

    model_config = ConfigDict(populate_by_name=True)

    subscription_token: str = Field(
        alias="subscriptionToken",
        min_length=1,
        max_length=255,
    )
    reason: Optional[str] = Field(default=None, max_length=1000)


class CancelResponse(BaseModel):
    """
    Response schema for subscription cancellation.

    ``warning`` is only set when PayFast did not confirm the cancellation;
    the local cancellation has been committed either way.
    """

    success: bool = True
    message: str
    details: Optional[str] = None
    warning: Optional[str] = None


class SubscriptionStatusResponse(BaseModel):
    """Response schema for subscription status."""

    success: bool = True
    data: dict[str, Any]


class CheckoutRequest(BaseModel):
    """Request schema for building a PayFast checkout form."""

    model_config = ConfigDict(populate_by_name=True)

    name_first: Optional[str] = Field(default=None, alias="nameFirst", max_length=100)
    email_address: Optional[str] = Field(default=None, alias="emailAddress", max_length=100)


class CheckoutResponse(BaseModel):
    """Signed form fields to POST to PayFast's hosted payment page."""

    success: bool = True
    data: dict[str, Any]
