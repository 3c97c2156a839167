"""
NotificationDispatcher: fire-and-forget billing emails.

Each call only enqueues a Celery task. A broker outage, or any other
enqueue error, is logged and reported as False; it never propagates into
the webhook that triggered it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notifications.tasks import send_payment_failed_email, send_subscription_canceled_email

if TYPE_CHECKING:
    from celery import Task

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Queues transactional emails for billing state changes."""

    def notify_cancellation(self, email: str, username: str) -> bool:
        """Queue the subscription-canceled email. Returns False if queuing failed."""
        return self._enqueue(send_subscription_canceled_email, email, username)

    def notify_payment_failure(self, email: str, username: str) -> bool:
        """Queue the payment-failed email. Returns False if queuing failed."""
        return self._enqueue(send_payment_failed_email, email, username)

    def _enqueue(self, task: Task, email: str, username: str) -> bool:
        try:
            task.delay(email, username)
        except Exception:
            logger.exception(
                f"Failed to queue {task.name}",
                extra={"task": task.name, "email": email},
            )
            return False

        logger.info(
            f"Queued {task.name}",
            extra={"task": task.name, "email": email},
        )
        return True
