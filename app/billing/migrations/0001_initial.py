import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this row was last written")),
                ("stripe_product_id", models.CharField(max_length=255, unique=True)),
                ("stripe_price_id", models.CharField(max_length=255)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, null=True)),
                ("features", models.JSONField(blank=True, default=list)),
                ("price", models.PositiveIntegerField(default=0)),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("interval", models.CharField(choices=[("monthly", "Monthly"), ("yearly", "Yearly")], default="monthly", max_length=10)),
                ("interval_count", models.PositiveSmallIntegerField(default=1)),
                ("max_projects", models.PositiveIntegerField(blank=True, null=True)),
                ("max_users_per_project", models.PositiveIntegerField(blank=True, null=True)),
                ("max_storage", models.PositiveBigIntegerField(blank=True, null=True)),
                ("has_analytics", models.BooleanField(default=False)),
                ("has_priority_support", models.BooleanField(default=False)),
                ("has_custom_domain", models.BooleanField(default=False)),
                ("has_api_access", models.BooleanField(default=False)),
                ("display_order", models.IntegerField(default=0)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("is_popular", models.BooleanField(default=False)),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["display_order", "price"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this row was last written")),
                ("stripe_customer_id", models.CharField(blank=True, help_text="Stripe Customer ID (cus_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_subscription_id", models.CharField(blank=True, db_index=True, help_text="Stripe Subscription ID (sub_xxx)", max_length=255, null=True)),
                ("stripe_price_id", models.CharField(blank=True, help_text="Stripe Price ID (price_xxx)", max_length=255, null=True)),
                ("stripe_product_id", models.CharField(blank=True, help_text="Stripe Product ID (prod_xxx)", max_length=255, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("free", "Free"),
                            ("active", "Active"),
                            ("trialing", "Trialing"),
                            ("past_due", "Past Due"),
                            ("canceled", "Canceled"),
                            ("incomplete", "Incomplete"),
                            ("incomplete_expired", "Incomplete Expired"),
                            ("unpaid", "Unpaid"),
                            ("paused", "Paused"),
                        ],
                        db_index=True,
                        default="free",
                        help_text="Current subscription status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("current_period_start", models.DateTimeField(blank=True, null=True)),
                ("current_period_end", models.DateTimeField(blank=True, null=True)),
                ("cancel_at_period_end", models.BooleanField(default=False, help_text="Whether the subscription ends when the current period ends")),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("trial_end", models.DateTimeField(blank=True, null=True)),
                ("last_payment_amount", models.PositiveIntegerField(blank=True, help_text="Amount of the last paid invoice in smallest currency unit", null=True)),
                ("last_payment_date", models.DateTimeField(blank=True, null=True)),
                ("next_payment_date", models.DateTimeField(blank=True, help_text="When the provider will next attempt collection", null=True)),
                ("last_event_at", models.DateTimeField(blank=True, help_text="Provider timestamp of the newest status-bearing event applied", null=True)),
                ("last_invoice_event_at", models.DateTimeField(blank=True, help_text="Provider timestamp of the newest invoice payment event applied", null=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Incremented on each save")),
                (
                    "user",
                    models.OneToOneField(
                        help_text="Account that owns this subscription",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscription",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "current_period_end"], name="billing_sub_status_e7c1a9_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookAuditRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this row was last written")),
                ("stripe_event_id", models.CharField(help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency", max_length=255, unique=True)),
                ("event_type", models.CharField(db_index=True, help_text="Stripe event type (e.g. 'customer.subscription.updated')", max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("processing", "Processing"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("ignored", "Ignored"),
                        ],
                        db_index=True,
                        default="processing",
                        max_length=20,
                    ),
                ),
                ("request_body", models.TextField(help_text="Raw request body, kept byte-for-byte for replay")),
                ("signature", models.TextField(blank=True, default="")),
                ("api_version", models.CharField(blank=True, max_length=50, null=True)),
                ("stripe_customer_id", models.CharField(blank=True, db_index=True, max_length=255, null=True)),
                ("stripe_subscription_id", models.CharField(blank=True, max_length=255, null=True)),
                ("attempt_count", models.PositiveSmallIntegerField(default=1, help_text="Number of processing attempts")),
                ("processing_time_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("error_stack", models.TextField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="webhook_audit_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Audit Record",
                "verbose_name_plural": "Webhook Audit Records",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="billing_web_status_3b8f2d_idx"),
                    models.Index(fields=["status", "attempt_count"], name="billing_web_status_9a4c61_idx"),
                    models.Index(fields=["event_type", "created_at"], name="billing_web_event_t_5d2e80_idx"),
                ],
            },
        ),
    ]
