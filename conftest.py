"""
Root pytest configuration for the Django project.

Settings are read from the environment (django-environ), so the values a
test run needs are set here before pytest-django configures Django.
Project-wide fixtures live in app/conftest.py; app-specific fixtures in
each app's tests/conftest.py.
"""

import os

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Test-only configuration: in-process SQLite, eager Celery, dummy Stripe keys
os.environ.setdefault("ENV_FILE", os.path.join(os.path.dirname(__file__), ".env.test"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DEBUG", "True")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_API_VERSION", "2024-06-20")
os.environ.setdefault("LOG_LEVEL", "WARNING")
