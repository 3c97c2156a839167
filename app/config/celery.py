"""
Celery application for the billing backend.

Work that must stay off the webhook request path runs here:
- Notification emails (notifications.tasks)
- Product catalog sync and webhook maintenance (billing.tasks)

Redis is both broker and result backend. Tasks are auto-discovered from
every installed app's tasks.py; periodic schedules live in the database
(django-celery-beat) and are seeded by billing's migrations.

Usage:
    from celery import shared_task

    @shared_task
    def sync_product_catalog():
        ...

    sync_product_catalog.delay()
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
