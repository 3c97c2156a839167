"""
Infrastructure endpoints that sit outside the billing domain.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness/readiness probe.

    The database is required; the cache is reported but never fails the
    probe since the webhook path does not depend on it.

    Returns:
        200 {"status": "healthy", "database": "connected", "cache": ...}
        503 when the database cannot be reached
    """
    payload = {"status": "healthy", "database": "connected", "cache": "connected"}
    status_code = 200

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        payload["database"] = "disconnected"
        payload["status"] = "unhealthy"
        status_code = 503

    try:
        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") != "ok":
            payload["cache"] = "disconnected"
    except Exception as exc:  # noqa: BLE001 - any backend error means degraded
        logger.warning(
            "Health check: cache unreachable",
            extra={"error": str(exc)},
        )
        payload["cache"] = "disconnected"

    return JsonResponse(payload, status=status_code)
