"""
URL configuration for the billing app.

Routes:
    - POST checkout-session/ - Start a checkout
    - POST portal-session/ - Open the billing portal
    - POST cancel/ - Cancel at period end
    - GET subscription/ - Current subscription
    - GET plans/ - Pricing plans
    - POST webhook/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing import views
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("checkout-session/", views.CheckoutSessionView.as_view(), name="checkout-session"),
    path("portal-session/", views.PortalSessionView.as_view(), name="portal-session"),
    path("cancel/", views.CancelSubscriptionView.as_view(), name="cancel"),
    path("subscription/", views.SubscriptionView.as_view(), name="subscription"),
    path("plans/", views.PlansView.as_view(), name="plans"),
    # Webhook endpoints
    path("webhook/", stripe_webhook, name="webhook"),
]
