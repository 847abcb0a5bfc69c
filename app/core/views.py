"""
Infrastructure views that sit outside the settlement domain.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Report database and cache connectivity.

    Used by Docker health checks, Kubernetes liveness checks and load balancers.
    The database is required. A cache outage is reported but does not
    make the service unhealthy.

    Returns:
        200 with {"status": "healthy", "database": ..., "cache": ...}
        503 when the database cannot be reached
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check could not reach the database")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead cache
    # shows up as a failed round trip rather than an exception
    cache.set("health_check", "ok", timeout=1)
    health_status["cache"] = (
        "connected" if cache.get("health_check") == "ok" else "disconnected"
    )

    return JsonResponse(health_status, status=200 if is_healthy else 503)
