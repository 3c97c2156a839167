"""
Tests for webhook signature verification.

Tests cover:
- Valid signatures return the decoded body
- Missing body / header
- Digest mismatch, wrong secret, single-byte mutation
- Timestamp freshness window
"""

import time

import pytest

from billing.exceptions import InvalidSignatureError
from billing.tests.stripe_payloads import sign
from billing.webhooks.signatures import verify_signature

SECRET = "whsec_unit_secret"
BODY = '{"id":"evt_1","type":"invoice.payment_failed","created":1760000000}'


class TestVerifySignature:
    """Tests for verify_signature()."""

    def test_valid_signature_returns_text(self):
        """Should return the body as text when the signature matches."""
        header = sign(BODY, secret=SECRET)

        payload = verify_signature(BODY.encode(), header, SECRET, tolerance=300)

        assert payload == BODY

    def test_missing_body(self):
        """Should reject an empty body."""
        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_signature(b"", sign("", secret=SECRET), SECRET, tolerance=300)

        assert exc_info.value.details["reason"] == "missing_body"

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing_header(self, header):
        """Should reject a delivery without Stripe-Signature."""
        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_signature(BODY.encode(), header, SECRET, tolerance=300)

        assert exc_info.value.details["reason"] == "missing_signature"

    def test_malformed_header(self):
        """Should reject a header with no timestamp or v1 digest."""
        with pytest.raises(InvalidSignatureError):
            verify_signature(BODY.encode(), "garbage", SECRET, tolerance=300)

    def test_wrong_secret(self):
        """Should reject a body signed with another secret."""
        header = sign(BODY, secret="whsec_other")

        with pytest.raises(InvalidSignatureError):
            verify_signature(BODY.encode(), header, SECRET, tolerance=300)

    def test_single_byte_mutation_is_rejected(self):
        """Changing any byte of the body invalidates the signature."""
        header = sign(BODY, secret=SECRET)
        mutated = BODY.replace("evt_1", "evt_2")

        with pytest.raises(InvalidSignatureError):
            verify_signature(mutated.encode(), header, SECRET, tolerance=300)

    def test_reserialized_body_is_rejected(self):
        """Whitespace changes alone break the signature."""
        header = sign(BODY, secret=SECRET)
        spaced = BODY.replace(",", ", ")

        with pytest.raises(InvalidSignatureError):
            verify_signature(spaced.encode(), header, SECRET, tolerance=300)

    def test_stale_timestamp_is_rejected(self):
        """Should reject a correctly signed body older than the tolerance."""
        header = sign(BODY, secret=SECRET, timestamp=int(time.time()) - 301)

        with pytest.raises(InvalidSignatureError):
            verify_signature(BODY.encode(), header, SECRET, tolerance=300)

    def test_timestamp_inside_window_is_accepted(self):
        header = sign(BODY, secret=SECRET, timestamp=int(time.time()) - 60)

        assert verify_signature(BODY.encode(), header, SECRET, tolerance=300) == BODY

    def test_non_utf8_body_is_rejected(self):
        body = b"\xff\xfe not utf-8"

        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_signature(body, "t=1,v1=abc", SECRET, tolerance=300)

        assert exc_info.value.details["reason"] == "undecodable_body"

    def test_error_code(self):
        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_signature(BODY.encode(), None, SECRET, tolerance=300)

        assert exc_info.value.error_code == "INVALID_SIGNATURE"
