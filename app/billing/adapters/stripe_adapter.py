"""
Stripe API adapter for billing operations.

StripeAdapter owns an explicitly constructed stripe.StripeClient; nothing
here touches the SDK's module-level api_key. All outbound Stripe calls go
through this class so error handling and logging stay consistent.

Features:
- Timeout, retry count, API version and base URL taken from settings
- Automatic error translation to billing.exceptions.Stripe*
- Structured logging with timing metrics
- Plain dataclass results so callers never hold SDK objects

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_VERSION: Pinned API version
- STRIPE_API_BASE: API base URL (default: https://api.stripe.com)
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK network retries (default: 3)

Usage:
    from billing.adapters import StripeAdapter

    adapter = StripeAdapter.from_settings()
    session = adapter.create_checkout_session(
        customer_id="cus_xxx",
        price_id="price_xxx",
        success_url="https://app.example.com/billing/success",
        cancel_url="https://app.example.com/billing",
        user_id=user.pk,
    )
    redirect(session.url)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeError,
    StripeInvalidRequestError,
    StripeRateLimitError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class CustomerResult:
    """A provider customer (billing identity)."""

    id: str
    email: str | None = None


@dataclass(frozen=True)
class CheckoutSessionResult:
    """A hosted checkout session the browser is redirected to."""

    id: str
    url: str | None


@dataclass(frozen=True)
class PortalSessionResult:
    """A hosted billing-portal session."""

    url: str


@dataclass(frozen=True)
class CatalogProduct:
    """
    An active provider product together with its recurring default price.

    Attributes:
        metadata: Product metadata as strings, exactly as stored at the provider
        interval: Provider interval value ('month', 'year', ...)
    """

    product_id: str
    price_id: str
    name: str
    description: str | None
    active: bool
    unit_amount: int
    currency: str
    interval: str
    interval_count: int
    metadata: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    Holds one StripeClient. Instances are cheap and thread-safe; build one
    per request or task with from_settings(), or pass a client in tests.

    Usage:
        adapter = StripeAdapter.from_settings()
        customer = adapter.create_customer(email, name, user_id)
    """

    def __init__(self, client: stripe.StripeClient):
        self._client = client

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def from_settings(cls) -> StripeAdapter:
        """Build an adapter from the STRIPE_* settings."""
        client = stripe.StripeClient(
            settings.STRIPE_SECRET_KEY,
            stripe_version=settings.STRIPE_API_VERSION,
            base_addresses={"api": settings.STRIPE_API_BASE},
            max_network_retries=settings.STRIPE_MAX_RETRIES,
            http_client=stripe.RequestsClient(
                timeout=settings.STRIPE_API_TIMEOUT_SECONDS
            ),
        )
        return cls(client)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Customer & Session Operations
    # =========================================================================

    def create_customer(
        self,
        email: str,
        name: str | None,
        user_id: Any,
    ) -> CustomerResult:
        """
        Create a provider customer tagged with metadata.userId.

        The idempotency key is derived from the user id, so a retried
        request returns the customer created by the first attempt.

        Raises:
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        params: dict[str, Any] = {
            "email": email,
            "metadata": {"userId": str(user_id)},
        }
        if name:
            params["name"] = name

        customer = self._call(
            "create_customer",
            {"user_id": str(user_id)},
            lambda: self._client.customers.create(
                params=params,
                options={"idempotency_key": f"customer:{user_id}"},
            ),
        )
        return CustomerResult(id=customer.id, email=getattr(customer, "email", None))

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        user_id: Any,
    ) -> CheckoutSessionResult:
        """
        Create a subscription-mode checkout session for one price.

        metadata.userId is what checkout.session.completed uses to find
        the local account again.
        """
        session = self._call(
            "create_checkout_session",
            {"customer_id": customer_id, "price_id": price_id},
            lambda: self._client.checkout.sessions.create(
                params={
                    "customer": customer_id,
                    "mode": "subscription",
                    "payment_method_types": ["card"],
                    "line_items": [{"price": price_id, "quantity": 1}],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": {"userId": str(user_id)},
                },
            ),
        )
        return CheckoutSessionResult(id=session.id, url=getattr(session, "url", None))

    def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
    ) -> PortalSessionResult:
        """Create a billing-portal session for an existing customer."""
        session = self._call(
            "create_portal_session",
            {"customer_id": customer_id},
            lambda: self._client.billing_portal.sessions.create(
                params={"customer": customer_id, "return_url": return_url},
            ),
        )
        return PortalSessionResult(url=session.url)

    def schedule_cancellation(self, subscription_id: str) -> None:
        """
        Ask Stripe to cancel a subscription at the end of its period.

        Local state is not touched; the customer.subscription.updated
        webhook that follows carries cancel_at_period_end=true.
        """
        self._call(
            "schedule_cancellation",
            {"subscription_id": subscription_id},
            lambda: self._client.subscriptions.update(
                subscription_id,
                params={"cancel_at_period_end": True},
            ),
        )

    # =========================================================================
    # Catalog
    # =========================================================================

    def list_catalog_products(self) -> list[CatalogProduct]:
        """
        List active products whose default price is recurring.

        Products without a default price, or with a one-off default price,
        are skipped.
        """
        products = self._call(
            "list_catalog_products",
            {},
            lambda: list(self._iter_active_products()),
        )

        catalog: list[CatalogProduct] = []
        for product in products:
            price = product.get("default_price")
            if not price or isinstance(price, str) or price.get("type") != "recurring":
                continue
            recurring = price.get("recurring") or {}
            catalog.append(
                CatalogProduct(
                    product_id=product["id"],
                    price_id=price["id"],
                    name=product.get("name") or "",
                    description=product.get("description"),
                    active=bool(product.get("active", True)),
                    unit_amount=price.get("unit_amount") or 0,
                    currency=price.get("currency") or "usd",
                    interval=recurring.get("interval") or "month",
                    interval_count=recurring.get("interval_count") or 1,
                    metadata=dict(product.get("metadata") or {}),
                )
            )
        return catalog

    def _iter_active_products(self) -> Iterator[Any]:
        page = self._client.products.list(
            params={"active": True, "expand": ["data.default_price"], "limit": 100},
        )
        yield from page.auto_paging_iter()

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _call(
        self,
        operation: str,
        log_context: dict[str, Any],
        func: Callable[[], Any],
    ) -> Any:
        """Run one SDK call with timing logs and error translation."""
        logger = self.get_logger()
        log_context = {"operation": operation, **log_context}

        start_time = time.monotonic()
        logger.info("Starting Stripe operation", extra=log_context)
        try:
            result = func()
        except stripe.StripeError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, _handle_stripe_error always raises

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return result

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK errors to billing exceptions.

        Raises:
            StripeInvalidRequestError: Invalid request parameters
            StripeAuthenticationError: API key rejected
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: Network failure or Stripe server error
            StripeError: Anything else the SDK reports
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeError(
            str(error.user_message or error),
            stripe_code=error.code,
        ) from error
