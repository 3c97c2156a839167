"""
Billing service: user-initiated subscription operations.

BillingService is the entry point for everything the billing API does on
behalf of a signed-in user. It never changes subscription status itself:
it asks Stripe to do something and the resulting webhook updates the
local row (see billing.webhooks.handlers).

Operations:
    create_customer: Ensure the user has a billing identity (cus_xxx)
    create_checkout_session: Hosted checkout for one price
    create_portal_session: Hosted billing portal
    cancel_subscription: Schedule cancellation at period end
    get_subscription / is_premium: Read current state
    get_pricing_plans / sync_products: Product catalog

Every provider call takes the StripeAdapter as an argument, so tests pass
one built around a mock client.

Usage:
    from billing.adapters import StripeAdapter
    from billing.services import BillingService

    result = BillingService.create_checkout_session(
        user,
        price_id="price_xxx",
        success_url="https://app.example.com/billing/success",
        cancel_url="https://app.example.com/billing",
        adapter=StripeAdapter.from_settings(),
    )
    if result.success:
        return Response({"session_id": result.data.id, "url": result.data.url})
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.exceptions import StripeError
from billing.models import Product, Subscription
from billing.state_machines import BillingInterval, SubscriptionStatus

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from billing.adapters import (
        CatalogProduct,
        CheckoutSessionResult,
        PortalSessionResult,
        StripeAdapter,
    )


# =============================================================================
# Catalog Metadata Parsing
# =============================================================================


def _metadata_int(metadata: dict[str, str], key: str) -> int | None:
    value = metadata.get(key)
    if not value:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _metadata_flag(metadata: dict[str, str], key: str) -> bool:
    return metadata.get(key) == "true"


def product_defaults(item: CatalogProduct) -> dict[str, Any]:
    """
    Map a provider catalog entry to Product field values.

    Plan limits and feature flags are read from product metadata:
        features: comma-separated list
        maxProjects, maxUsersPerProject, maxStorage, displayOrder: integers
        hasAnalytics, hasPrioritySupport, hasCustomDomain, hasApiAccess,
        isPopular: the string "true" enables the flag
    """
    metadata = item.metadata
    features = [
        feature.strip()
        for feature in (metadata.get("features") or "").split(",")
        if feature.strip()
    ]
    return {
        "stripe_price_id": item.price_id,
        "name": item.name,
        "description": item.description,
        "features": features,
        "price": item.unit_amount,
        "currency": item.currency,
        "interval": (
            BillingInterval.YEARLY if item.interval == "year" else BillingInterval.MONTHLY
        ),
        "interval_count": item.interval_count,
        "max_projects": _metadata_int(metadata, "maxProjects"),
        "max_users_per_project": _metadata_int(metadata, "maxUsersPerProject"),
        "max_storage": _metadata_int(metadata, "maxStorage"),
        "has_analytics": _metadata_flag(metadata, "hasAnalytics"),
        "has_priority_support": _metadata_flag(metadata, "hasPrioritySupport"),
        "has_custom_domain": _metadata_flag(metadata, "hasCustomDomain"),
        "has_api_access": _metadata_flag(metadata, "hasApiAccess"),
        "display_order": _metadata_int(metadata, "displayOrder") or 0,
        "is_active": item.active,
        "is_popular": _metadata_flag(metadata, "isPopular"),
    }


# =============================================================================
# Billing Service
# =============================================================================


class BillingService(BaseService):
    """
    User-facing billing operations.

    All methods are class methods. Expected failures (no billing account,
    nothing to cancel, Stripe rejected the request) come back as
    ServiceResult.failure; unexpected errors propagate.
    """

    # =========================================================================
    # Billing Identity
    # =========================================================================

    @classmethod
    def create_customer(
        cls,
        user,
        adapter: StripeAdapter,
    ) -> ServiceResult[Subscription]:
        """
        Ensure the user has a Stripe customer linked to their Subscription.

        An existing link is returned as-is. Otherwise a customer tagged with
        metadata.userId is created and stored on the (possibly new) FREE
        Subscription. The Stripe call uses an idempotency key derived from
        the user id, so two racing requests get the same customer.
        """
        logger = cls.get_logger()

        subscription = Subscription.objects.filter(user=user).first()
        if subscription and subscription.stripe_customer_id:
            return ServiceResult.success(subscription)

        try:
            customer = adapter.create_customer(
                email=user.email,
                name=user.get_full_name() or user.get_username(),
                user_id=user.pk,
            )
        except StripeError as e:
            return ServiceResult.from_exception(e)

        with cls.atomic():
            subscription, _ = Subscription.objects.select_for_update().get_or_create(
                user=user
            )
            if not subscription.stripe_customer_id:
                subscription.stripe_customer_id = customer.id
                subscription.save()

        logger.info(
            "Stripe customer linked",
            extra={"user_id": str(user.pk), "customer_id": subscription.stripe_customer_id},
        )
        return ServiceResult.success(subscription)

    # =========================================================================
    # Hosted Sessions
    # =========================================================================

    @classmethod
    def create_checkout_session(
        cls,
        user,
        price_id: str,
        success_url: str,
        cancel_url: str,
        adapter: StripeAdapter,
    ) -> ServiceResult[CheckoutSessionResult]:
        """Create a subscription checkout session, creating the customer first if needed."""
        customer_result = cls.create_customer(user, adapter)
        if not customer_result.success:
            return ServiceResult.failure(
                customer_result.error, error_code=customer_result.error_code
            )

        try:
            session = adapter.create_checkout_session(
                customer_id=customer_result.data.stripe_customer_id,
                price_id=price_id,
                success_url=success_url,
                cancel_url=cancel_url,
                user_id=user.pk,
            )
        except StripeError as e:
            return ServiceResult.from_exception(e)

        cls.get_logger().info(
            "Checkout session created",
            extra={"user_id": str(user.pk), "session_id": session.id, "price_id": price_id},
        )
        return ServiceResult.success(session)

    @classmethod
    def create_portal_session(
        cls,
        user,
        return_url: str,
        adapter: StripeAdapter,
    ) -> ServiceResult[PortalSessionResult]:
        """Create a billing-portal session. Fails when the user has no customer."""
        subscription = Subscription.objects.filter(user=user).first()
        if not subscription or not subscription.stripe_customer_id:
            return ServiceResult.failure(
                "No billing account found for user",
                error_code="NO_BILLING_ACCOUNT",
            )

        try:
            session = adapter.create_portal_session(
                subscription.stripe_customer_id, return_url
            )
        except StripeError as e:
            return ServiceResult.from_exception(e)

        return ServiceResult.success(session)

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def cancel_subscription(
        cls,
        user,
        adapter: StripeAdapter,
    ) -> ServiceResult[Subscription]:
        """
        Ask Stripe to cancel the user's subscription at period end.

        The local Subscription is returned unchanged; the
        customer.subscription.updated webhook that follows sets
        cancel_at_period_end.
        """
        subscription = Subscription.objects.filter(user=user).first()
        if (
            not subscription
            or not subscription.stripe_subscription_id
            or subscription.status == SubscriptionStatus.CANCELED
        ):
            return ServiceResult.failure(
                "No active subscription found",
                error_code="NO_ACTIVE_SUBSCRIPTION",
            )

        try:
            adapter.schedule_cancellation(subscription.stripe_subscription_id)
        except StripeError as e:
            return ServiceResult.from_exception(e)

        cls.get_logger().info(
            "Subscription cancellation requested",
            extra={
                "user_id": str(user.pk),
                "subscription_id": subscription.stripe_subscription_id,
            },
        )
        return ServiceResult.success(subscription)

    # =========================================================================
    # Status
    # =========================================================================

    @classmethod
    def get_subscription(cls, user) -> Subscription | None:
        """Return the user's Subscription, or None if they have none."""
        return Subscription.objects.filter(user=user).first()

    @classmethod
    def is_premium(cls, user) -> bool:
        """Whether the user currently has paid features (ACTIVE or TRIALING)."""
        subscription = cls.get_subscription(user)
        return bool(subscription and subscription.is_premium)

    # =========================================================================
    # Product Catalog
    # =========================================================================

    @classmethod
    def get_pricing_plans(cls) -> QuerySet[Product]:
        """Active catalog products in display order."""
        return Product.objects.active().order_by("display_order", "price")

    @classmethod
    def sync_products(cls, adapter: StripeAdapter) -> ServiceResult[dict[str, int]]:
        """
        Mirror the provider catalog into Product.

        Upserts every active recurring product by stripe_product_id and
        deactivates local products that are no longer in the catalog.

        Returns:
            ServiceResult with {"synced": n, "deactivated": m}

        Raises:
            StripeError: Rate limits and outages, so the caller can back off
        """
        logger = cls.get_logger()

        try:
            catalog = adapter.list_catalog_products()
        except StripeError as e:
            logger.error("Failed to fetch product catalog", extra={"error": str(e)})
            if e.is_retryable:
                raise
            return ServiceResult.from_exception(e)

        seen_ids = [item.product_id for item in catalog]
        with cls.atomic():
            for item in catalog:
                Product.objects.update_or_create(
                    stripe_product_id=item.product_id,
                    defaults=product_defaults(item),
                )
            deactivated = (
                Product.objects.active()
                .exclude(stripe_product_id__in=seen_ids)
                .update(is_active=False, updated_at=timezone.now())
            )

        logger.info(
            "Products synced",
            extra={"synced": len(catalog), "deactivated": deactivated},
        )
        return ServiceResult.success({"synced": len(catalog), "deactivated": deactivated})
