"""
Payments API Endpoints
======================

Builds signed PayFast checkout forms for the hosted payment page.
"""

import logging

from fastapi import APIRouter

from app.core.errors import ErrorCodes, ServiceUnavailableError
from app.dependencies import AppSettings, CurrentCaller, PayFast
from app.schemas.subscription import CheckoutRequest, CheckoutResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
)
async def create_checkout(
    checkout_data: CheckoutRequest,
    caller: CurrentCaller,
    payfast: PayFast,
    app_settings: AppSettings,
):
    """
    Create a signed subscription checkout for the caller.

    The client POSTs ``data.fields`` as a form to ``data.process_url``.
    """
    if not app_settings.PAYFAST_MERCHANT_ID or not app_settings.PAYFAST_MERCHANT_KEY:
        logger.error("PayFast checkout requested but merchant credentials are not configured")
        raise ServiceUnavailableError(
            code=ErrorCodes.PAY_NOT_CONFIGURED,
            message="Payments are not configured",
        )

    checkout = payfast.build_checkout_form(
        user_id=caller.user_id,
        email_address=checkout_data.email_address or caller.email,
        name_first=checkout_data.name_first,
    )

    return CheckoutResponse(success=True, data=checkout)
