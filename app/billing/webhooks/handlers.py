"""
Webhook event handlers: the subscription state machine.

Every handler runs inside the processor's transaction, reads the affected
Subscription with select_for_update(), and returns a HandlerResult.

Rules shared by the handlers:
- Events only ever update an existing Subscription found by customer id.
  checkout.session.completed is the one event that may create the row.
- Status-bearing events (subscription created/updated/deleted, invoice
  payment failed) are ordered by Subscription.last_event_at; invoice
  payment succeeded by Subscription.last_invoice_event_at. An event older
  than the newest applied one is skipped as STALE.
- Emails and catalog syncs are queued with context.after_commit, so they
  happen once, and only when the state change itself committed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.utils import timezone
from django_fsm import can_proceed

from billing.exceptions import MissingMetadataError
from billing.models import Subscription
from billing.state_machines import map_provider_status
from billing.webhooks.events import CATALOG_EVENT_TYPES
from billing.webhooks.results import HandlerResult
from billing.webhooks.router import register_handler

if TYPE_CHECKING:
    from billing.webhooks.events import (
        CatalogChanged,
        CheckoutSessionCompleted,
        InvoicePaymentFailed,
        InvoicePaymentSucceeded,
        SubscriptionChanged,
        SubscriptionDeleted,
    )
    from billing.webhooks.processor import HandlerContext


logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================


def _locked_subscription(customer_id: str | None) -> Subscription | None:
    """Lock and return the Subscription owning a customer id."""
    if not customer_id:
        return None
    return (
        Subscription.objects.select_for_update()
        .filter(stripe_customer_id=customer_id)
        .first()
    )


def _subscription_not_found(event, customer_id: str | None) -> HandlerResult:
    logger.warning(
        "Subscription not found for customer",
        extra={
            "stripe_event_id": event.event_id,
            "event_type": event.event_type,
            "customer_id": customer_id,
        },
    )
    return HandlerResult.not_found(f"No subscription for customer {customer_id}")


def _stale(event, subscription: Subscription) -> HandlerResult:
    logger.info(
        "Skipping out-of-order event",
        extra={
            "stripe_event_id": event.event_id,
            "event_type": event.event_type,
            "event_created": event.created.isoformat(),
            "subscription_id": str(subscription.id),
        },
    )
    return HandlerResult.stale(f"Newer event already applied to {subscription.id}")


def _find_user(user_id: str):
    User = get_user_model()
    try:
        pk = User._meta.pk.to_python(user_id)
    except ValidationError:
        return None
    return User.objects.filter(pk=pk).first()


# =============================================================================
# Checkout
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(
    event: CheckoutSessionCompleted,
    context: HandlerContext,
) -> HandlerResult:
    """
    Link the checkout's customer to the purchasing user.

    Status is left alone; the customer.subscription.created event that
    Stripe sends alongside carries it.

    Raises:
        MissingMetadataError: The session has no metadata.userId
    """
    if not event.user_id:
        raise MissingMetadataError(
            "No userId in checkout session metadata",
            details={"session_id": event.session_id},
        )

    context.handle.annotate(
        customer_id=event.customer_id,
        subscription_id=event.subscription_id,
    )

    user = _find_user(event.user_id)
    if user is None:
        logger.warning(
            "Checkout completed for unknown user",
            extra={"stripe_event_id": event.event_id, "user_id": event.user_id},
        )
        return HandlerResult.not_found(f"No user {event.user_id}")

    context.handle.annotate(user_id=user.pk)
    subscription, _ = Subscription.objects.select_for_update().get_or_create(user=user)

    if event.customer_id and subscription.stripe_customer_id != event.customer_id:
        if subscription.stripe_customer_id:
            logger.warning(
                "Checkout customer differs from linked customer, keeping linked one",
                extra={
                    "stripe_event_id": event.event_id,
                    "customer_id": event.customer_id,
                    "linked_customer_id": subscription.stripe_customer_id,
                },
            )
        elif Subscription.objects.filter(stripe_customer_id=event.customer_id).exists():
            logger.warning(
                "Checkout customer already linked to another user",
                extra={
                    "stripe_event_id": event.event_id,
                    "customer_id": event.customer_id,
                },
            )
        else:
            subscription.stripe_customer_id = event.customer_id
            subscription.save(update_fields=["stripe_customer_id", "updated_at"])

    logger.info(
        f"Checkout session completed for user {user.pk}",
        extra={
            "stripe_event_id": event.event_id,
            "session_id": event.session_id,
            "customer_id": event.customer_id,
        },
    )
    return HandlerResult.applied()


# =============================================================================
# Subscription Lifecycle
# =============================================================================


@register_handler("customer.subscription.created", "customer.subscription.updated")
def handle_subscription_changed(
    event: SubscriptionChanged,
    context: HandlerContext,
) -> HandlerResult:
    """Copy the provider's view of the subscription onto the local row."""
    context.handle.annotate(
        customer_id=event.customer_id,
        subscription_id=event.subscription_id,
    )

    subscription = _locked_subscription(event.customer_id)
    if subscription is None:
        return _subscription_not_found(event, event.customer_id)

    context.handle.annotate(user_id=subscription.user_id)
    if subscription.is_stale_status_event(event.created):
        return _stale(event, subscription)

    status = map_provider_status(event.status)
    subscription.sync_status(status)
    subscription.stripe_subscription_id = event.subscription_id
    subscription.stripe_price_id = event.price_id
    subscription.stripe_product_id = event.product_id
    subscription.current_period_start = event.current_period_start
    subscription.current_period_end = event.current_period_end
    subscription.cancel_at_period_end = event.cancel_at_period_end
    subscription.canceled_at = event.canceled_at
    subscription.trial_end = event.trial_end
    subscription.last_event_at = event.created
    subscription.save()

    logger.info(
        f"Subscription updated for user {subscription.user_id}, status: {status}",
        extra={
            "stripe_event_id": event.event_id,
            "customer_id": event.customer_id,
            "provider_status": event.status,
        },
    )
    return HandlerResult.applied()


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(
    event: SubscriptionDeleted,
    context: HandlerContext,
) -> HandlerResult:
    """Cancel the local subscription and email the user."""
    context.handle.annotate(
        customer_id=event.customer_id,
        subscription_id=event.subscription_id,
    )

    subscription = _locked_subscription(event.customer_id)
    if subscription is None:
        return _subscription_not_found(event, event.customer_id)

    context.handle.annotate(user_id=subscription.user_id)
    if subscription.is_stale_status_event(event.created):
        return _stale(event, subscription)

    subscription.cancel()
    subscription.last_event_at = event.created
    subscription.save()

    user = subscription.user
    if user.email:
        email, username = user.email, user.get_username()
        context.after_commit(
            lambda: context.notifier.notify_cancellation(email, username)
        )

    logger.info(
        f"Subscription deleted for user {subscription.user_id}",
        extra={"stripe_event_id": event.event_id, "customer_id": event.customer_id},
    )
    return HandlerResult.applied()


# =============================================================================
# Invoices
# =============================================================================


@register_handler("invoice.payment_succeeded")
def handle_invoice_payment_succeeded(
    event: InvoicePaymentSucceeded,
    context: HandlerContext,
) -> HandlerResult:
    """Record the payment and the next collection attempt."""
    context.handle.annotate(
        customer_id=event.customer_id,
        subscription_id=event.subscription_id,
    )

    subscription = _locked_subscription(event.customer_id)
    if subscription is None:
        return _subscription_not_found(event, event.customer_id)

    context.handle.annotate(user_id=subscription.user_id)
    if subscription.is_stale_invoice_event(event.created):
        return _stale(event, subscription)

    subscription.last_payment_amount = event.amount_paid
    subscription.last_payment_date = timezone.now()
    subscription.next_payment_date = event.next_payment_attempt
    subscription.last_invoice_event_at = event.created
    subscription.save(
        update_fields=[
            "last_payment_amount",
            "last_payment_date",
            "next_payment_date",
            "last_invoice_event_at",
            "updated_at",
        ]
    )

    logger.info(
        f"Invoice payment succeeded for user {subscription.user_id}",
        extra={
            "stripe_event_id": event.event_id,
            "invoice_id": event.invoice_id,
            "amount_paid": event.amount_paid,
        },
    )
    return HandlerResult.applied()


@register_handler("invoice.payment_failed")
def handle_invoice_payment_failed(
    event: InvoicePaymentFailed,
    context: HandlerContext,
) -> HandlerResult:
    """Mark the subscription past due and email the user."""
    context.handle.annotate(
        customer_id=event.customer_id,
        subscription_id=event.subscription_id,
    )

    subscription = _locked_subscription(event.customer_id)
    if subscription is None:
        return _subscription_not_found(event, event.customer_id)

    context.handle.annotate(user_id=subscription.user_id)
    if subscription.is_stale_status_event(event.created):
        return _stale(event, subscription)

    if not can_proceed(subscription.mark_past_due):
        logger.info(
            "Payment failure for an ended subscription, leaving it canceled",
            extra={
                "stripe_event_id": event.event_id,
                "subscription_id": str(subscription.id),
                "status": subscription.status,
            },
        )
        return HandlerResult.stale(f"Subscription {subscription.id} is already canceled")

    subscription.mark_past_due()
    subscription.last_event_at = event.created
    subscription.save()

    user = subscription.user
    if user.email:
        email, username = user.email, user.get_username()
        context.after_commit(
            lambda: context.notifier.notify_payment_failure(email, username)
        )

    logger.info(
        f"Invoice payment failed for user {subscription.user_id}",
        extra={"stripe_event_id": event.event_id, "invoice_id": event.invoice_id},
    )
    return HandlerResult.applied()


# =============================================================================
# Catalog
# =============================================================================


@register_handler(*CATALOG_EVENT_TYPES)
def handle_catalog_changed(
    event: CatalogChanged,
    context: HandlerContext,
) -> HandlerResult:
    """Queue a product catalog refresh."""
    # Import here to avoid circular imports
    from billing.tasks import sync_product_catalog

    context.after_commit(sync_product_catalog.delay)
    logger.info(
        "Catalog changed, sync queued",
        extra={"stripe_event_id": event.event_id, "object_id": event.object_id},
    )
    return HandlerResult.applied()
