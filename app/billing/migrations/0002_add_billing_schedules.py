"""
Add celery-beat schedules for billing maintenance tasks.

- Retry failed webhook events: every 5 minutes
- Reset stuck webhook events: every 15 minutes
- Sync product catalog from Stripe: every hour
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Retry Failed Stripe Webhooks",
        "task": "billing.tasks.retry_failed_webhooks",
        "every": 5,
        "period": "minutes",
        "description": (
            "Requeues FAILED webhook audit records that are still under "
            "WEBHOOK_MAX_ATTEMPTS."
        ),
    },
    {
        "name": "Reset Stuck Stripe Webhooks",
        "task": "billing.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "period": "minutes",
        "description": (
            "Marks webhook audit records stuck in PROCESSING as FAILED so "
            "they can be retried."
        ),
    },
    {
        "name": "Sync Stripe Product Catalog",
        "task": "billing.tasks.sync_product_catalog",
        "every": 1,
        "period": "hours",
        "description": "Mirrors active recurring Stripe products into the local catalog.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for billing maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period=entry["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
