# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings, root URLs, ASGI/WSGI entry points and the Celery application.
#
# The Celery app is imported here so shared_task binds to it when Django
# starts and tasks are discovered in every installed app.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
