"""
Infrastructure endpoints that sit outside the domain apps.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness/readiness probe.

    Reports database and channel layer reachability. The channel layer is
    what fans out chat messages, so a broken layer marks the service
    unhealthy as well.

    Example Response:
        {"status": "healthy", "database": "connected", "channel_layer": "connected"}
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "channel_layer": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        health_status["database"] = "disconnected"
        is_healthy = False

    layer = get_channel_layer()
    if layer is None:
        health_status["channel_layer"] = "not configured"
        is_healthy = False
    else:
        try:
            channel_name = async_to_sync(layer.new_channel)()
            async_to_sync(layer.send)(channel_name, {"type": "health.ping"})
            health_status["channel_layer"] = "connected"
        except (OSError, ConnectionError):
            logger.exception("Health check: channel layer unreachable")
            health_status["channel_layer"] = "disconnected"
            is_healthy = False

    if not is_healthy:
        health_status["status"] = "unhealthy"

    return JsonResponse(health_status, status=200 if is_healthy else 503)
