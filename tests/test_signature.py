"""
PayFast Signature Tests
=======================

Tests for the digest, canonical string and verification helpers.
"""

import pytest

from app.core.signature import (
    PayFastSignatureVerifier,
    canonicalize,
    canonicalize_ordered,
    digest,
    percent_encode,
    sign,
    verify_signature,
)

PASSPHRASE = "jt7NOE43FZPn"

CHECKOUT_PARAMS = {
    "merchant_id": "10000100",
    "merchant_key": "46f0cd694581a",
    "amount": "99.00",
    "item_name": "Pro Plan - Annual Subscription",
    "custom_str1": "user-123",
}

CHECKOUT_CANONICAL = (
    "amount=99.00&custom_str1=user-123"
    "&item_name=Pro+Plan+-+Annual+Subscription"
    "&merchant_id=10000100&merchant_key=46f0cd694581a"
)


class TestDigest:

    def test_known_vectors(self):
        assert digest(b"") == "d41d8cd98f00b204e9800998ecf8427e"
        assert digest(b"abc") == "900150983cd24fb0d6963f7d28e17f72"

    def test_lowercase_hex(self):
        value = digest(b"PayFast")
        assert len(value) == 32
        assert value == value.lower()


class TestPercentEncode:

    @pytest.mark.parametrize(
        "raw, encoded",
        [
            ("a b", "a+b"),
            ("!'()*~", "%21%27%28%29%2A%7E"),
            ("-_.", "-_."),
            ("a&b=c", "a%26b%3Dc"),
            ("https://x.co/p", "https%3A%2F%2Fx.co%2Fp"),
            ("1+1", "1%2B1"),
            ("é", "%C3%A9"),
        ],
    )
    def test_php_urlencode_dialect(self, raw, encoded):
        assert percent_encode(raw) == encoded

    def test_hex_is_uppercase(self):
        assert percent_encode("@") == "%40"
        assert percent_encode("ü") == "%C3%BC"


class TestCanonicalize:

    def test_sorted_keys(self):
        assert canonicalize(CHECKOUT_PARAMS) == CHECKOUT_CANONICAL

    def test_passphrase_appended(self):
        assert canonicalize(CHECKOUT_PARAMS, PASSPHRASE) == (
            CHECKOUT_CANONICAL + "&passphrase=jt7NOE43FZPn"
        )

    def test_passphrase_is_encoded(self):
        assert canonicalize({"a": "1"}, "my secret!") == "a=1&passphrase=my+secret%21"

    def test_insertion_order_does_not_matter(self):
        reversed_params = dict(reversed(list(CHECKOUT_PARAMS.items())))
        assert canonicalize(reversed_params, PASSPHRASE) == canonicalize(
            CHECKOUT_PARAMS, PASSPHRASE
        )

    def test_signature_key_excluded(self):
        with_signature = {**CHECKOUT_PARAMS, "signature": "abc"}
        assert canonicalize(with_signature) == CHECKOUT_CANONICAL

    def test_empty_value_same_as_absent(self):
        with_blank = {**CHECKOUT_PARAMS, "name_first": "", "name_last": "   "}
        assert canonicalize(with_blank) == canonicalize(CHECKOUT_PARAMS)

    def test_values_not_trimmed(self):
        assert canonicalize({"a": " x "}) == "a=+x+"

    def test_empty_params(self):
        assert canonicalize({}) == ""
        assert canonicalize({}, PASSPHRASE) == "passphrase=jt7NOE43FZPn"

    def test_ordered_keeps_given_order(self):
        pairs = [("merchant_id", "10000100"), ("amount", "5.00"), ("name_first", "")]
        assert canonicalize_ordered(pairs) == "merchant_id=10000100&amount=5.00"


class TestVerifySignature:

    def test_known_signature(self):
        assert sign(CHECKOUT_PARAMS) == "60226b1946f97bd0ac9bfdedf49588db"
        assert sign(CHECKOUT_PARAMS, PASSPHRASE) == "5c10e902e0371f4d3b0925bcda2062d4"

    def test_valid_signature(self):
        params = {**CHECKOUT_PARAMS, "signature": "5c10e902e0371f4d3b0925bcda2062d4"}
        assert verify_signature(params, PASSPHRASE) is True

    def test_uppercase_signature_accepted(self):
        params = {**CHECKOUT_PARAMS, "signature": "5C10E902E0371F4D3B0925BCDA2062D4"}
        assert verify_signature(params, PASSPHRASE) is True

    def test_wrong_passphrase(self):
        params = {**CHECKOUT_PARAMS, "signature": sign(CHECKOUT_PARAMS, PASSPHRASE)}
        assert verify_signature(params, "other-passphrase") is False
        assert verify_signature(params, None) is False

    def test_tampered_value(self):
        params = {**CHECKOUT_PARAMS, "signature": sign(CHECKOUT_PARAMS, PASSPHRASE)}
        params["amount"] = "1.00"
        assert verify_signature(params, PASSPHRASE) is False

    def test_flipped_signature_character(self):
        signature = sign(CHECKOUT_PARAMS, PASSPHRASE)
        flipped = ("0" if signature[0] != "0" else "1") + signature[1:]
        params = {**CHECKOUT_PARAMS, "signature": flipped}
        assert verify_signature(params, PASSPHRASE) is False

    def test_missing_signature(self):
        assert verify_signature(CHECKOUT_PARAMS, PASSPHRASE) is False
        assert verify_signature({**CHECKOUT_PARAMS, "signature": ""}, PASSPHRASE) is False

    def test_non_ascii_signature_does_not_raise(self):
        params = {**CHECKOUT_PARAMS, "signature": "ünïcode"}
        assert verify_signature(params, PASSPHRASE) is False


class TestPayFastSignatureVerifier:

    def test_merchant_matches(self):
        verifier = PayFastSignatureVerifier("10000100", PASSPHRASE)
        assert verifier.merchant_matches({"merchant_id": "10000100"}) is True
        assert verifier.merchant_matches({"merchant_id": "10000101"}) is False
        assert verifier.merchant_matches({}) is False

    def test_unconfigured_merchant_rejects_everything(self):
        verifier = PayFastSignatureVerifier("", PASSPHRASE)
        assert verifier.merchant_matches({"merchant_id": ""}) is False

    def test_signature_matches(self):
        verifier = PayFastSignatureVerifier("10000100", PASSPHRASE)
        params = {**CHECKOUT_PARAMS, "signature": sign(CHECKOUT_PARAMS, PASSPHRASE)}
        assert verifier.signature_matches(params) is True

    def test_empty_passphrase_means_none(self):
        verifier = PayFastSignatureVerifier("10000100", "")
        params = {**CHECKOUT_PARAMS, "signature": "60226b1946f97bd0ac9bfdedf49588db"}
        assert verifier.signature_matches(params) is True
