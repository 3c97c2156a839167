"""
Billing exceptions.

Exception Hierarchy:
    BillingError (base for billing domain)
    ├── InvalidSignatureError - Webhook failed authentication (HTTP 400)
    ├── MalformedEventError - Verified body is not a usable event (HTTP 400)
    ├── MissingMetadataError - Event lacks metadata a handler requires
    └── StripeError - Base for provider API errors
        ├── StripeInvalidRequestError - Invalid request params (permanent)
        ├── StripeAuthenticationError - Bad API key (permanent)
        ├── StripeRateLimitError - Rate limited (transient, retry)
        └── StripeAPIUnavailableError - Network/5xx (transient, retry)

    AuditLedgerError - Illegal ledger transition (inherits ConflictError)

Expected webhook outcomes (no matching subscription, stale event, unknown
event type) are not exceptions; see billing.webhooks.results.

Usage:
    from billing.exceptions import InvalidSignatureError

    raise InvalidSignatureError(
        "Webhook signature verification failed",
        details={"reason": "timestamp outside tolerance"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """
    Base exception for billing operations.

    Example:
        try:
            processor.handle_delivery(body, signature)
        except BillingError as e:
            logger.warning(f"Webhook rejected: {e}")
            return JsonResponse(e.to_dict(), status=400)
    """

    default_error_code: str = "BILLING_ERROR"


class InvalidSignatureError(BillingError):
    """
    Raised when a webhook delivery cannot be authenticated.

    Covers a missing body, a missing or malformed Stripe-Signature header,
    an HMAC mismatch and a timestamp outside the tolerance window. Raised
    before any ledger row exists.
    """

    default_error_code: str = "INVALID_SIGNATURE"


class MalformedEventError(BillingError):
    """
    Raised when an authenticated body is not a decodable provider event.

    Example: valid JSON without an "id" or "type".
    """

    default_error_code: str = "MALFORMED_EVENT"


class MissingMetadataError(BillingError):
    """
    Raised when an event lacks metadata its handler needs.

    checkout.session.completed without metadata.userId is the known case.
    The ledger records it as FAILED and the provider redelivers, since it
    usually means a checkout was created by a misconfigured client.
    """

    default_error_code: str = "MISSING_METADATA"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(BillingError):
    """
    Base exception for Stripe API errors.

    Attributes:
        stripe_code: Stripe's error code, when it sent one
        is_retryable: True for transient failures worth retrying with backoff

    Example:
        try:
            adapter.schedule_cancellation(subscription_id)
        except StripeError as e:
            if e.is_retryable:
                raise self.retry(exc=e)
            raise
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Unknown price id, unknown customer, a subscription that is already
    canceled. Retrying with the same parameters will not help.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeAuthenticationError(StripeError):
    """
    Stripe rejected the API key.

    Operational problem: STRIPE_SECRET_KEY is wrong or revoked.
    """

    default_error_code: str = "STRIPE_AUTHENTICATION_FAILED"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe could not be reached or answered with a server error.

    Covers network failures, timeouts and 5xx responses.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


# =============================================================================
# Ledger Exceptions
# =============================================================================


class AuditLedgerError(ConflictError):
    """
    Raised when a ledger record cannot make the requested transition.

    Finishing a record that is no longer PROCESSING (another worker
    finished or expired it first) raises this instead of overwriting
    the terminal state.
    """

    default_error_code: str = "AUDIT_LEDGER_CONFLICT"


__all__ = [
    "AuditLedgerError",
    "BillingError",
    "InvalidSignatureError",
    "MalformedEventError",
    "MissingMetadataError",
    "StripeAPIUnavailableError",
    "StripeAuthenticationError",
    "StripeError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
]
