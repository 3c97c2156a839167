"""
ASGI entry point served by Uvicorn.

    uvicorn config.asgi:application --host 0.0.0.0 --port 8000

Exposes the ASGI callable as a module-level variable named `application`.
Only HTTP is served; the webhook and billing API are plain request/response.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
