# apps/notifications/tasks.py
import requests
from celery import shared_task
from celery.utils.log import get_task_logger
from django.conf import settings
from django.utils import timezone

logger = get_task_logger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    queue='high_priority'
)
def send_otp_sms(self, phone, content):
    """
    Posts one text message to the SMS gateway, retrying transient failures.
    With the "dummy" provider (and in dev/test) nothing leaves the process.
    """
    if settings.SMS_PROVIDER == "dummy" or settings.DEBUG or getattr(settings, "TESTING", False):
        logger.info(f"[SMS:dummy] message queued for {phone[:4]}******")
        return "Dev Sent"

    if not settings.SMS_PROVIDER_KEY or not settings.SMS_PROVIDER_URL:
        logger.error(f"SMS provider '{settings.SMS_PROVIDER}' is missing its key or URL")
        return "Config Missing"

    try:
        response = requests.post(
            settings.SMS_PROVIDER_URL,
            json={
                "to": phone,
                "message": content,
                "sender_id": settings.SMS_PROVIDER_SENDER_ID,
                "api_key": settings.SMS_PROVIDER_KEY,
            },
            timeout=5,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"SMS gateway error ({e}), attempt {self.request.retries + 1}")
        raise self.retry(exc=e)
    return "Sent"


@shared_task(ignore_result=True)
def dispatch_notification(payload):
    """
    Persists one in-app notification and hands it to push delivery.
    `payload` is the plain dict built by NotificationService.emit.
    """
    from .models import Notification

    notification = Notification.objects.create(
        user_id=payload["user_id"],
        type=payload["type"],
        title=payload["title"][:100],
        message=payload["message"][:500],
        data=payload.get("data") or {},
        priority=payload.get("priority", "medium"),
        action_button=payload.get("action_button"),
        expires_at=payload.get("expires_at"),
    )

    # Push provider hand-off (FCM/APNS) is not wired yet; the inbox record is the delivery
    logger.info(f"[PUSH] {notification.type} -> user {notification.user_id}: {notification.title}")
    return notification.id


@shared_task
def purge_expired_codes():
    from .models import PhoneVerificationCode

    deleted, _ = PhoneVerificationCode.objects.filter(expires_at__lte=timezone.now()).delete()
    if deleted:
        logger.info(f"Purged {deleted} expired verification codes")
    return deleted


@shared_task
def purge_expired_notifications():
    from .models import Notification

    deleted, _ = Notification.objects.filter(
        expires_at__isnull=False, expires_at__lte=timezone.now()
    ).delete()
    if deleted:
        logger.info(f"Purged {deleted} expired notifications")
    return deleted
