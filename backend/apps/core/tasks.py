# apps/core/tasks.py
from celery import shared_task
from django.core.cache import cache
from django.utils import timezone

BEAT_HEARTBEAT_KEY = "celery_beat_health"


@shared_task
def beat_heartbeat():
    """Proves to /health/ that the scheduler is still ticking."""
    cache.set(BEAT_HEARTBEAT_KEY, timezone.now().timestamp(), timeout=120)
    return "Beat Alive"
