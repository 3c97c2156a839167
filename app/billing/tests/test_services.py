"""
Tests for BillingService.

Tests cover:
- Billing identity creation
- Checkout / portal sessions
- Cancellation (no local mutation)
- Status queries
- Product catalog sync
"""

import pytest

from billing.adapters import (
    CatalogProduct,
    CheckoutSessionResult,
    CustomerResult,
    PortalSessionResult,
)
from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeInvalidRequestError,
)
from billing.models import Product, Subscription
from billing.services import BillingService, product_defaults
from billing.state_machines import BillingInterval, SubscriptionStatus
from billing.tests.factories import ActiveSubscriptionFactory, ProductFactory, SubscriptionFactory


def catalog_product(**overrides):
    values = {
        "product_id": "prod_pro",
        "price_id": "price_pro",
        "name": "Pro",
        "description": "For teams",
        "active": True,
        "unit_amount": 1900,
        "currency": "usd",
        "interval": "month",
        "interval_count": 1,
        "metadata": {},
    }
    values.update(overrides)
    return CatalogProduct(**values)


# =============================================================================
# Billing Identity
# =============================================================================


class TestCreateCustomer:
    """Tests for BillingService.create_customer()."""

    def test_creates_and_links_customer(self, user, mock_adapter):
        mock_adapter.create_customer.return_value = CustomerResult(id="cus_new", email=user.email)

        result = BillingService.create_customer(user, mock_adapter)

        assert result.success
        assert result.data.stripe_customer_id == "cus_new"
        assert result.data.status == SubscriptionStatus.FREE
        mock_adapter.create_customer.assert_called_once_with(
            email=user.email,
            name=user.get_username(),
            user_id=user.pk,
        )
        assert Subscription.objects.get(user=user).stripe_customer_id == "cus_new"

    def test_existing_customer_is_reused(self, subscription, user, mock_adapter):
        result = BillingService.create_customer(user, mock_adapter)

        assert result.success
        assert result.data.stripe_customer_id == "cus_test"
        mock_adapter.create_customer.assert_not_called()

    def test_creates_subscription_row_if_missing(self, user, mock_adapter):
        Subscription.objects.filter(user=user).delete()
        mock_adapter.create_customer.return_value = CustomerResult(id="cus_new")

        result = BillingService.create_customer(user, mock_adapter)

        assert result.success
        assert Subscription.objects.get(user=user).stripe_customer_id == "cus_new"

    def test_stripe_failure(self, user, mock_adapter):
        mock_adapter.create_customer.side_effect = StripeAPIUnavailableError("down")

        result = BillingService.create_customer(user, mock_adapter)

        assert not result.success
        assert result.error_code == "STRIPE_UNAVAILABLE"
        assert Subscription.objects.get(user=user).stripe_customer_id is None


# =============================================================================
# Hosted Sessions
# =============================================================================


class TestCreateCheckoutSession:
    def test_creates_customer_then_session(self, user, mock_adapter):
        mock_adapter.create_customer.return_value = CustomerResult(id="cus_new")
        mock_adapter.create_checkout_session.return_value = CheckoutSessionResult(
            id="cs_1", url="https://checkout.stripe.com/c/cs_1"
        )

        result = BillingService.create_checkout_session(
            user,
            price_id="price_pro",
            success_url="https://app.example.com/ok",
            cancel_url="https://app.example.com/cancel",
            adapter=mock_adapter,
        )

        assert result.success
        assert result.data.id == "cs_1"
        mock_adapter.create_checkout_session.assert_called_once_with(
            customer_id="cus_new",
            price_id="price_pro",
            success_url="https://app.example.com/ok",
            cancel_url="https://app.example.com/cancel",
            user_id=user.pk,
        )

    def test_customer_failure_stops_checkout(self, user, mock_adapter):
        mock_adapter.create_customer.side_effect = StripeAPIUnavailableError("down")

        result = BillingService.create_checkout_session(
            user, "price_pro", "https://a.example.com", "https://b.example.com", mock_adapter
        )

        assert not result.success
        assert result.error_code == "STRIPE_UNAVAILABLE"
        mock_adapter.create_checkout_session.assert_not_called()

    def test_invalid_price(self, subscription, user, mock_adapter):
        mock_adapter.create_checkout_session.side_effect = StripeInvalidRequestError(
            "No such price: 'price_nope'"
        )

        result = BillingService.create_checkout_session(
            user, "price_nope", "https://a.example.com", "https://b.example.com", mock_adapter
        )

        assert not result.success
        assert result.error_code == "INVALID_STRIPE_REQUEST"


class TestCreatePortalSession:
    def test_requires_customer(self, user, mock_adapter):
        result = BillingService.create_portal_session(user, "https://app.example.com", mock_adapter)

        assert not result.success
        assert result.error_code == "NO_BILLING_ACCOUNT"
        mock_adapter.create_portal_session.assert_not_called()

    def test_creates_session(self, subscription, user, mock_adapter):
        mock_adapter.create_portal_session.return_value = PortalSessionResult(
            url="https://billing.stripe.com/p/1"
        )

        result = BillingService.create_portal_session(user, "https://app.example.com", mock_adapter)

        assert result.success
        assert result.data.url == "https://billing.stripe.com/p/1"
        mock_adapter.create_portal_session.assert_called_once_with(
            "cus_test", "https://app.example.com"
        )


# =============================================================================
# Cancellation
# =============================================================================


class TestCancelSubscription:
    """Tests for BillingService.cancel_subscription()."""

    def test_schedules_cancellation_without_local_change(
        self, active_subscription, user, mock_adapter
    ):
        before = Subscription.objects.get(pk=active_subscription.pk)

        result = BillingService.cancel_subscription(user, mock_adapter)

        assert result.success
        mock_adapter.schedule_cancellation.assert_called_once_with("sub_test")
        after = Subscription.objects.get(pk=active_subscription.pk)
        assert after.status == SubscriptionStatus.ACTIVE
        assert after.cancel_at_period_end is False
        assert after.version == before.version
        assert after.updated_at == before.updated_at

    def test_no_provider_subscription(self, subscription, user, mock_adapter):
        result = BillingService.cancel_subscription(user, mock_adapter)

        assert not result.success
        assert result.error_code == "NO_ACTIVE_SUBSCRIPTION"
        mock_adapter.schedule_cancellation.assert_not_called()

    def test_already_canceled(self, user, mock_adapter):
        SubscriptionFactory(
            user=user,
            status=SubscriptionStatus.CANCELED,
            stripe_subscription_id="sub_old",
        )

        result = BillingService.cancel_subscription(user, mock_adapter)

        assert not result.success

    def test_stripe_failure(self, active_subscription, user, mock_adapter):
        mock_adapter.schedule_cancellation.side_effect = StripeInvalidRequestError("gone")

        result = BillingService.cancel_subscription(user, mock_adapter)

        assert not result.success
        assert result.error_code == "INVALID_STRIPE_REQUEST"


# =============================================================================
# Status
# =============================================================================


class TestStatus:
    def test_is_premium(self, active_subscription, user):
        assert BillingService.is_premium(user)

    def test_free_user_is_not_premium(self, user):
        assert not BillingService.is_premium(user)

    def test_user_without_row(self, user):
        Subscription.objects.filter(user=user).delete()

        assert BillingService.get_subscription(user) is None
        assert not BillingService.is_premium(user)


# =============================================================================
# Product Catalog
# =============================================================================


class TestProductDefaults:
    """Tests for catalog metadata parsing."""

    def test_metadata_mapping(self):
        defaults = product_defaults(
            catalog_product(
                interval="year",
                interval_count=1,
                metadata={
                    "features": "Unlimited projects, Priority support ,",
                    "maxProjects": "10",
                    "maxUsersPerProject": "5",
                    "maxStorage": "1073741824",
                    "hasAnalytics": "true",
                    "hasPrioritySupport": "false",
                    "hasCustomDomain": "TRUE",
                    "hasApiAccess": "true",
                    "displayOrder": "2",
                    "isPopular": "true",
                },
            )
        )

        assert defaults["features"] == ["Unlimited projects", "Priority support"]
        assert defaults["interval"] == BillingInterval.YEARLY
        assert defaults["max_projects"] == 10
        assert defaults["max_users_per_project"] == 5
        assert defaults["max_storage"] == 1073741824
        assert defaults["has_analytics"] is True
        assert defaults["has_priority_support"] is False
        assert defaults["has_custom_domain"] is False
        assert defaults["has_api_access"] is True
        assert defaults["display_order"] == 2
        assert defaults["is_popular"] is True
        assert defaults["price"] == 1900

    def test_empty_metadata(self):
        defaults = product_defaults(catalog_product(interval="week"))

        assert defaults["features"] == []
        assert defaults["interval"] == BillingInterval.MONTHLY
        assert defaults["max_projects"] is None
        assert defaults["display_order"] == 0
        assert defaults["has_analytics"] is False

    def test_non_numeric_limit_is_ignored(self):
        defaults = product_defaults(catalog_product(metadata={"maxProjects": "lots"}))

        assert defaults["max_projects"] is None


class TestSyncProducts:
    """Tests for BillingService.sync_products()."""

    def test_upserts_and_deactivates(self, db, mock_adapter):
        existing = ProductFactory(stripe_product_id="prod_pro", name="Old name", price=900)
        stale = ProductFactory(stripe_product_id="prod_gone")
        mock_adapter.list_catalog_products.return_value = [
            catalog_product(),
            catalog_product(product_id="prod_team", price_id="price_team", name="Team"),
        ]

        result = BillingService.sync_products(mock_adapter)

        assert result.success
        assert result.data == {"synced": 2, "deactivated": 1}
        existing.refresh_from_db()
        assert existing.name == "Pro"
        assert existing.price == 1900
        assert existing.stripe_price_id == "price_pro"
        assert Product.objects.get(stripe_product_id="prod_team").is_active
        stale.refresh_from_db()
        assert not stale.is_active

    def test_permanent_stripe_failure_changes_nothing(self, db, mock_adapter):
        product = ProductFactory()
        mock_adapter.list_catalog_products.side_effect = StripeAuthenticationError("bad key")

        result = BillingService.sync_products(mock_adapter)

        assert not result.success
        assert result.error_code == "STRIPE_AUTHENTICATION_FAILED"
        product.refresh_from_db()
        assert product.is_active

    def test_transient_stripe_failure_is_raised(self, db, mock_adapter):
        product = ProductFactory()
        mock_adapter.list_catalog_products.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            BillingService.sync_products(mock_adapter)

        product.refresh_from_db()
        assert product.is_active

    def test_pricing_plans(self, db):
        second = ProductFactory(display_order=2)
        first = ProductFactory(display_order=1)
        ProductFactory(is_active=False)

        assert list(BillingService.get_pricing_plans()) == [first, second]
