"""
Tests for NotificationDispatcher.

Tests cover:
- Each notification queues its task with email and username
- Queue failures are logged and reported, never raised
"""

import logging
from unittest.mock import patch

from notifications.dispatcher import NotificationDispatcher


class TestNotificationDispatcher:
    def test_cancellation_queues_task(self):
        with patch("notifications.dispatcher.send_subscription_canceled_email") as mock_task:
            queued = NotificationDispatcher().notify_cancellation("ada@example.com", "ada")

        assert queued is True
        mock_task.delay.assert_called_once_with("ada@example.com", "ada")

    def test_payment_failure_queues_task(self):
        with patch("notifications.dispatcher.send_payment_failed_email") as mock_task:
            queued = NotificationDispatcher().notify_payment_failure("ada@example.com", "ada")

        assert queued is True
        mock_task.delay.assert_called_once_with("ada@example.com", "ada")

    def test_queue_failure_is_swallowed(self, caplog):
        with patch("notifications.dispatcher.send_payment_failed_email") as mock_task:
            mock_task.name = "notifications.tasks.send_payment_failed_email"
            mock_task.delay.side_effect = ConnectionError("broker unreachable")

            with caplog.at_level(logging.ERROR, logger="notifications.dispatcher"):
                queued = NotificationDispatcher().notify_payment_failure("ada@example.com", "ada")

        assert queued is False
        assert "Failed to queue notifications.tasks.send_payment_failed_email" in caplog.text
