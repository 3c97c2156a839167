"""
Webhook endpoint view for Stripe.

The view processes the event inline: verify -> ledger -> handler -> ledger.
Slow side effects (emails, catalog sync) are queued by the handlers, so
the response still goes out well within Stripe's delivery timeout.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhook/", stripe_webhook, name="webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.exceptions import InvalidSignatureError, MalformedEventError
from billing.webhooks.processor import get_webhook_processor

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive a Stripe webhook delivery.

    Stripe retries any non-2xx response, which is what makes a 500 after
    a recorded failure safe: the retry reclaims the FAILED audit record.

    Returns:
        JsonResponse with status:
        - 200: {"received": true} processed, ignored, or already processed
        - 400: Missing/invalid signature or undecodable event (nothing recorded)
        - 409: Same event is being processed by another delivery
        - 500: Handler failed; failure recorded in the audit ledger

    Example Stripe-Signature header:
        t=1614556800,v1=5257a869e7ecebeda32affa62cdca3fa51cad7e77a0e56ff536d0ce8e108d8bd
    """
    processor = get_webhook_processor()
    signature = request.headers.get("Stripe-Signature")

    try:
        result = processor.handle_delivery(request.body, signature)
    except (InvalidSignatureError, MalformedEventError) as e:
        logger.warning(
            f"Webhook rejected: {e.error_code}",
            extra={"error": e.message, "details": e.details},
        )
        return JsonResponse(e.to_dict(), status=400)
    except Exception as e:
        logger.error(
            f"Webhook delivery failed: {type(e).__name__}",
            exc_info=True,
        )
        return JsonResponse(
            {"received": False, "error": "Webhook processing failed"},
            status=500,
        )

    if result.in_progress:
        return JsonResponse(
            {"received": False, "error": "Event is already being processed"},
            status=409,
        )

    body = {"received": True}
    if result.duplicate:
        body["duplicate"] = True
    return JsonResponse(body)
