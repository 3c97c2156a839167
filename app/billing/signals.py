"""
Django signals for billing.

This module defines signal handlers for:
- Creating a FREE Subscription when a user account is created

Related files:
    - models/subscription.py: Subscription
    - apps.py: Signal import in ready()
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_subscription(sender, instance, created, **kwargs):
    """
    Provision a FREE Subscription for newly created users.

    Skipped for fixture loading (raw saves).
    """
    if not created or kwargs.get("raw"):
        return

    from billing.models import Subscription

    _, was_created = Subscription.objects.get_or_create(user=instance)
    if was_created:
        logger.debug(f"Subscription created for user: {instance.pk}")
