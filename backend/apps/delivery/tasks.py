# apps/delivery/tasks.py
import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from apps.notifications.services import NotificationService
from .models import ACTIVE_STATUSES, ACCEPTED, Delivery

logger = logging.getLogger(__name__)


@shared_task
def monitor_stuck_deliveries():
    """
    SLA Monitor: reports deliveries sitting in accepted / in-transit for
    too long and nudges their drivers. Never changes a status.
    """
    limit = timezone.now() - timedelta(minutes=settings.DELIVERY_STUCK_AFTER_MINUTES)

    stuck = list(
        Delivery.objects.filter(status__in=ACTIVE_STATUSES, updated_at__lt=limit)
        .select_related("driver__user")
        .order_by("updated_at")
    )
    if not stuck:
        return "All systems nominal"

    stuck_accepted = sum(1 for d in stuck if d.status == ACCEPTED)
    msg = (
        f"[SLA BREACH] Stuck Deliveries: "
        f"Accepted={stuck_accepted}, InTransit={len(stuck) - stuck_accepted}"
    )
    logger.warning(msg, extra={"metadata": {
        "deliveries": [{"id": d.pk, "driver_id": d.driver_id, "status": d.status} for d in stuck],
    }})

    for delivery in stuck:
        NotificationService.emit(
            delivery.driver.user, "general", "Delivery Reminder",
            f"Delivery #{delivery.pk} is still marked {delivery.get_status_display().lower()}. "
            "Please update its status.",
            data={"delivery_id": delivery.pk, "status": delivery.status},
        )

    return msg
