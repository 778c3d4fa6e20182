"""
Helper Functions
================

Common utility functions used across the application.
"""

import calendar
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

logger = logging.getLogger(__name__)

_REFERENCE_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    """Get current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


def add_billing_interval(start: datetime, interval: str) -> datetime:
    """
    Advance ``start`` by one billing period.

    Month-end dates clamp to the last day of the target month, so
    31 January + 1 month is 28/29 February.
    """
    if interval == "year":
        year, month = start.year + 1, start.month
    elif interval == "month":
        year = start.year + start.month // 12
        month = start.month % 12 + 1
    else:
        raise ValueError(f"Unsupported billing interval: {interval}")

    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """Parse a gateway amount such as ``"99.00"``; None if absent or garbage."""
    if value is None or not str(value).strip():
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        logger.warning("Unparseable amount from gateway: %r", value)
        return None
    if not amount.is_finite():
        logger.warning("Non-finite amount from gateway: %r", value)
        return None
    return amount


def generate_payment_reference() -> str:
    """Merchant-side payment id, e.g. ``PF_1755850869146_vh6uhgd53``."""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(9))
    return f"PF_{int(time.time() * 1000)}_{suffix}"
