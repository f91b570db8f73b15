import time
import logging
from django.http import JsonResponse
from django.db import connection
from django.core.cache import cache

from apps.core.tasks import BEAT_HEARTBEAT_KEY

logger = logging.getLogger(__name__)

BEAT_STALE_AFTER_SECONDS = 90


def _probe_db():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")


def _probe_cache():
    # OTP throttles, the kill switch and revoked tokens all depend on it
    cache.set("health:ping", "pong", timeout=5)
    if cache.get("health:ping") != "pong":
        raise RuntimeError("cache read-back mismatch")


def _beat_state():
    last_beat = cache.get(BEAT_HEARTBEAT_KEY)
    if last_beat is None:
        return "warming_up"
    if time.time() - float(last_beat) > BEAT_STALE_AFTER_SECONDS:
        return "stuck"
    return "ok"


def health_check(request):
    """
    Load balancer probe. 503 only when the database or cache is down;
    a stalled scheduler degrades the report but keeps the pod in rotation.
    """
    services = {}
    for name, probe in (("db", _probe_db), ("cache", _probe_cache)):
        try:
            probe()
        except Exception as e:
            logger.critical(f"Health check: {name} unreachable: {e}")
            services[name] = "unreachable"
            return JsonResponse({"status": "error", "services": services}, status=503)
        services[name] = "ok"

    services["beat"] = _beat_state()
    overall = "degraded" if services["beat"] == "stuck" else "ok"
    return JsonResponse({"status": overall, "services": services})
