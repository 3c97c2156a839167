"""
Celery tasks for billing email delivery.

Tasks:
    send_subscription_canceled_email: Subscription ended
    send_payment_failed_email: Invoice payment failed, update payment method

Emails are plain text sent through Django's configured EMAIL_BACKEND.
Connection-level SMTP failures are retried with backoff; anything else
fails the task.

Usage:
    from notifications.tasks import send_payment_failed_email

    send_payment_failed_email.delay("ada@example.com", "ada")
"""

from __future__ import annotations

import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


# Transient delivery errors worth retrying
RETRYABLE_EMAIL_ERRORS = (SMTPException, ConnectionError, TimeoutError)


def _deliver(email: str, subject: str, body: str) -> bool:
    sent = send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [email],
        fail_silently=False,
    )
    logger.info(
        f"Email sent: {subject}",
        extra={"email": email, "sent": sent},
    )
    return bool(sent)


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_EMAIL_ERRORS,
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_subscription_canceled_email(self, email: str, username: str) -> bool:
    """Tell the user their subscription has ended."""
    app_name = settings.APP_NAME
    body = (
        f"Hi {username or 'there'},\n\n"
        f"Your {app_name} subscription has been canceled and your account "
        "is back on the free plan.\n\n"
        "You can subscribe again at any time from your billing settings.\n\n"
        f"The {app_name} team\n"
    )
    return _deliver(email, f"{app_name} - Subscription canceled", body)


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_EMAIL_ERRORS,
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_payment_failed_email(self, email: str, username: str) -> bool:
    """Ask the user to update their payment method."""
    app_name = settings.APP_NAME
    body = (
        f"Hi {username or 'there'},\n\n"
        "We were unable to process the latest payment for your "
        f"{app_name} subscription.\n\n"
        "Please update your payment method from your billing settings to "
        "keep your subscription active.\n\n"
        f"The {app_name} team\n"
    )
    return _deliver(email, f"{app_name} - Payment failed", body)
