"""
Billing API views.

Endpoints (prefixed with /api/v1/billing/):
    POST checkout-session/ - Start a subscription checkout
    POST portal-session/   - Open the billing portal
    POST cancel/           - Cancel at period end
    GET  subscription/     - Caller's subscription state
    GET  plans/            - Public pricing plans

The Stripe webhook endpoint lives in billing.webhooks.views.

Related files:
    - serializers.py: Request/response serialization
    - services.py: BillingService
    - urls.py: URL routing
"""

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.adapters import StripeAdapter
from billing.serializers import (
    CheckoutSessionRequestSerializer,
    CheckoutSessionResponseSerializer,
    ErrorResponseSerializer,
    FreeSubscriptionSerializer,
    PortalSessionRequestSerializer,
    PortalSessionResponseSerializer,
    ProductSerializer,
    SubscriptionSerializer,
)
from billing.services import BillingService


def _failure_response(result) -> Response:
    return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)


class CheckoutSessionView(APIView):
    """
    POST: Create a Stripe checkout session for one price.

    URL: /api/v1/billing/checkout-session/

    Creates the user's Stripe customer first if they have none.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Create checkout session",
        tags=["Billing"],
        request=CheckoutSessionRequestSerializer,
        responses={
            200: CheckoutSessionResponseSerializer,
            400: OpenApiResponse(response=ErrorResponseSerializer),
        },
    )
    def post(self, request):
        serializer = CheckoutSessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = BillingService.create_checkout_session(
            request.user,
            adapter=StripeAdapter.from_settings(),
            **serializer.validated_data,
        )
        if not result.success:
            return _failure_response(result)

        return Response({"session_id": result.data.id, "url": result.data.url})


class PortalSessionView(APIView):
    """
    POST: Create a billing-portal session.

    URL: /api/v1/billing/portal-session/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Create billing portal session",
        tags=["Billing"],
        request=PortalSessionRequestSerializer,
        responses={
            200: PortalSessionResponseSerializer,
            400: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="User has no billing account",
            ),
        },
    )
    def post(self, request):
        serializer = PortalSessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = BillingService.create_portal_session(
            request.user,
            serializer.validated_data["return_url"],
            adapter=StripeAdapter.from_settings(),
        )
        if not result.success:
            return _failure_response(result)

        return Response({"url": result.data.url})


class CancelSubscriptionView(APIView):
    """
    POST: Cancel the caller's subscription at the end of the current period.

    URL: /api/v1/billing/cancel/

    Returns the subscription as it is now. The change shows up once
    Stripe's customer.subscription.updated webhook arrives.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel subscription at period end",
        tags=["Billing"],
        request=None,
        responses={
            200: SubscriptionSerializer,
            400: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="No active subscription",
            ),
        },
    )
    def post(self, request):
        result = BillingService.cancel_subscription(
            request.user,
            adapter=StripeAdapter.from_settings(),
        )
        if not result.success:
            return _failure_response(result)

        return Response(SubscriptionSerializer(result.data).data)


class SubscriptionView(APIView):
    """
    GET: The caller's subscription state.

    URL: /api/v1/billing/subscription/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current subscription",
        tags=["Billing"],
        responses={200: SubscriptionSerializer},
    )
    def get(self, request):
        subscription = BillingService.get_subscription(request.user)
        if subscription is None:
            return Response(FreeSubscriptionSerializer({}).data)
        return Response(SubscriptionSerializer(subscription).data)


class PlansView(APIView):
    """
    GET: Active pricing plans.

    URL: /api/v1/billing/plans/
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="List pricing plans",
        tags=["Billing"],
        responses={200: ProductSerializer(many=True)},
    )
    def get(self, request):
        plans = BillingService.get_pricing_plans()
        return Response(ProductSerializer(plans, many=True).data)
