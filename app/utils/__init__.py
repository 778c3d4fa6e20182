"""
Utilities Module
================

Helper functions and utility classes.
"""

from app.utils.helpers import (
    add_billing_interval,
    generate_payment_reference,
    parse_amount,
    utc_now,
)

__all__ = [
    "add_billing_interval",
    "generate_payment_reference",
    "parse_amount",
    "utc_now",
]
