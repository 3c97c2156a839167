"""
Django app configuration for notifications.

The app owns no models; it ships the dispatcher and the email tasks that
Celery discovers from notifications.tasks.
"""

from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    name = "notifications"
    verbose_name = "Billing notifications"
