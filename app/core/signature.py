"""
PayFast Signature Module
========================

Byte-exact implementation of PayFast's signing protocol:

- ``digest``: MD5 of the canonical string, lowercase hex
- ``canonicalize``: deterministic parameter string for ITN verification
- ``canonicalize_ordered``: same encoding, caller-supplied field order
  (outbound checkout forms)
- ``verify_signature``: canonicalize + digest + constant-time compare

PayFast generates its signatures with PHP's ``urlencode``, so every value is
encoded in that dialect. Any deviation makes every signature mismatch
without any other diagnostic.
"""

import hashlib
import hmac
import logging
from typing import Iterable, Mapping, Optional, Tuple
from urllib.parse import quote_plus

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = "signature"
PASSPHRASE_FIELD = "passphrase"


def digest(data: bytes) -> str:
    """Return the lowercase hex MD5 digest PayFast signs with."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def percent_encode(value: str) -> str:
    """
    Encode a value exactly like PHP ``urlencode``.

    Spaces become ``+``; only ``A-Z a-z 0-9 - _ .`` stay literal. Python's
    ``quote_plus`` additionally keeps ``~`` literal, which PHP escapes.
    """
    return quote_plus(value, safe="", encoding="utf-8").replace("~", "%7E")


def _is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


def canonicalize_ordered(
    pairs: Iterable[Tuple[str, str]],
    passphrase: Optional[str] = None,
) -> str:
    """
    Build a signature string from ``(key, value)`` pairs in the given order.

    Pairs with blank values are dropped entirely; the ``signature`` key is
    never part of its own input.
    """
    parts = [
        f"{key}={percent_encode(str(value))}"
        for key, value in pairs
        if key != SIGNATURE_FIELD and not _is_blank(value)
    ]
    if passphrase:
        parts.append(f"{PASSPHRASE_FIELD}={percent_encode(passphrase)}")
    return "&".join(parts)


def canonicalize(
    params: Mapping[str, str],
    passphrase: Optional[str] = None,
) -> str:
    """
    Build the canonical string PayFast hashed to sign an ITN.

    Keys are sorted in ascending code-point order, which for ``str`` keys is
    the same as UTF-8 byte order, so the result does not depend on the
    mapping's insertion order. A key present with an empty value produces the
    same string as the key being absent.

    Args:
        params: Raw ITN parameters, ``signature`` included or not.
        passphrase: Shared passphrase configured on the merchant account.

    Returns:
        The canonical string, ``&passphrase=...`` appended when configured.
    """
    return canonicalize_ordered(
        ((key, params[key]) for key in sorted(params)),
        passphrase,
    )


def sign(params: Mapping[str, str], passphrase: Optional[str] = None) -> str:
    """Signature PayFast would attach to ``params``."""
    return digest(canonicalize(params, passphrase).encode("utf-8"))


def verify_signature(
    params: Mapping[str, str],
    passphrase: Optional[str] = None,
) -> bool:
    """
    Check the ``signature`` field of an ITN against its parameters.

    The comparison is case-insensitive and constant-time. Malformed or
    incomplete input never raises; it simply fails to verify.
    """
    try:
        expected = sign(params, passphrase)
        provided = str(params.get(SIGNATURE_FIELD) or "").strip().lower()
    except (TypeError, ValueError, UnicodeError) as exc:
        logger.warning("Could not compute PayFast signature: %s", exc)
        return False

    return hmac.compare_digest(
        expected.encode("ascii"),
        provided.encode("utf-8", errors="replace"),
    )


class PayFastSignatureVerifier:
    """Merchant and signature checks for inbound ITNs."""

    def __init__(self, merchant_id: str, passphrase: Optional[str] = None):
        self.merchant_id = merchant_id
        self.passphrase = passphrase or None

    def merchant_matches(self, params: Mapping[str, str]) -> bool:
        """True if the ITN is addressed to our merchant account."""
        if not self.merchant_id:
            logger.warning("PAYFAST_MERCHANT_ID not configured")
            return False

        declared = str(params.get("merchant_id") or "")
        return hmac.compare_digest(
            declared.encode("utf-8"),
            self.merchant_id.encode("utf-8"),
        )

    def signature_matches(self, params: Mapping[str, str]) -> bool:
        """True if the ITN signature was produced with our passphrase."""
        return verify_signature(params, self.passphrase)
