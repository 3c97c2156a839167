"""
Webhook signature verification.

Stripe signs "{timestamp}.{raw body}" with HMAC-SHA256 and sends
"t=<timestamp>,v1=<hex digest>" in the Stripe-Signature header. The
check must run on the raw request bytes; a parsed-then-reserialized body
never matches.
"""

from __future__ import annotations

import logging

import stripe

from billing.exceptions import InvalidSignatureError

logger = logging.getLogger(__name__)


def verify_signature(
    raw_body: bytes | None,
    signature_header: str | None,
    secret: str,
    tolerance: int,
) -> str:
    """
    Authenticate a webhook delivery.

    Args:
        raw_body: Request body exactly as received
        signature_header: Value of the Stripe-Signature header
        secret: Endpoint signing secret (whsec_...)
        tolerance: Maximum age of the signed timestamp, in seconds

    Returns:
        The body decoded as UTF-8 text

    Raises:
        InvalidSignatureError: Body or header missing, header malformed,
            digest mismatch, or timestamp outside the tolerance window
    """
    if not raw_body:
        raise InvalidSignatureError(
            "Missing request body",
            details={"reason": "missing_body"},
        )
    if not signature_header:
        raise InvalidSignatureError(
            "Missing Stripe-Signature header",
            details={"reason": "missing_signature"},
        )

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidSignatureError(
            "Request body is not valid UTF-8",
            details={"reason": "undecodable_body"},
        ) from e

    try:
        stripe.WebhookSignature.verify_header(
            payload, signature_header, secret, tolerance=tolerance
        )
    except stripe.SignatureVerificationError as e:
        raise InvalidSignatureError(
            "Webhook signature verification failed",
            details={"reason": str(e)},
        ) from e

    return payload
