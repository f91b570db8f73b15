# apps/notifications/services.py
import secrets
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.utils.exceptions import InvalidCode, RateLimited
from .models import PhoneVerificationCode, Notification
from .tasks import send_otp_sms, dispatch_notification

logger = logging.getLogger(__name__)

DRIVER_REGISTRATION = "driver_registration"


def _humanize_document(document_type):
    # "driversLicense" -> "drivers License"
    return "".join(f" {c}" if c.isupper() else c for c in document_type).strip()


class NotificationService:
    """
    Fire-and-forget sink. emit() only schedules work for after the current
    transaction commits; nothing raised by dispatch reaches the caller.
    """

    @staticmethod
    def emit(user, type, title, message, data=None, priority="medium",
             action_button=None, expires_at=None):
        if type not in dict(Notification.TYPE_CHOICES):
            logger.error(f"Dropping notification with unknown type {type!r}")
            return

        payload = {
            "user_id": user.pk if hasattr(user, "pk") else user,
            "type": type,
            "title": title,
            "message": message,
            "data": data or {},
            "priority": priority,
            "action_button": action_button,
            "expires_at": expires_at.isoformat() if expires_at else None,
        }
        transaction.on_commit(lambda: NotificationService._dispatch(payload))

    @staticmethod
    def _dispatch(payload):
        try:
            dispatch_notification.delay(payload)
        except Exception:
            logger.exception(
                f"Notification dispatch failed for user {payload['user_id']} ({payload['type']})"
            )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    @staticmethod
    def profile_updated(user, updated_fields=()):
        fields_text = ", ".join(updated_fields) if updated_fields else "profile information"
        NotificationService.emit(
            user, "profile_updated", "Profile Updated",
            f"Your {fields_text} has been updated successfully.",
            data={"updated_fields": list(updated_fields)},
            priority="low",
        )

    @staticmethod
    def document_uploaded(user, document_type):
        NotificationService.emit(
            user, "document_uploaded", "Document Uploaded",
            f"Your {_humanize_document(document_type)} has been uploaded successfully and is under review.",
            data={"document_type": document_type},
        )

    @staticmethod
    def registration_completed(user):
        NotificationService.emit(
            user, "registration_completed", "Registration Complete! 🎉",
            "Welcome to Errand! Your driver registration is now complete.",
            data={"registration_step": "completed"},
            priority="high",
            action_button={"text": "Start Driving", "action": "view_available_deliveries", "data": {}},
        )

    @staticmethod
    def verification_approved(user):
        NotificationService.emit(
            user, "verification_approved", "Account Verified! 🎉",
            "Congratulations! Your driver account has been verified. "
            "You can now start accepting deliveries.",
            priority="high",
            action_button={"text": "Start Driving", "action": "view_available_deliveries", "data": {}},
        )

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------
    @staticmethod
    def delivery_accepted(user, delivery):
        NotificationService.emit(
            user, "delivery_accepted", "Delivery Accepted",
            f"You've accepted a delivery to {delivery.dropoff_address}. Head to pickup location.",
            data={
                "delivery_id": delivery.pk,
                "pickup_address": delivery.pickup_address,
                "dropoff_address": delivery.dropoff_address,
            },
            priority="high",
            action_button={"text": "Start Delivery", "action": "start_delivery",
                           "data": {"delivery_id": delivery.pk}},
        )

    @staticmethod
    def delivery_started(user, delivery):
        NotificationService.emit(
            user, "delivery_started", "Delivery In Progress",
            f"You're now en route to {delivery.dropoff_address}. Drive safely!",
            data={"delivery_id": delivery.pk, "dropoff_address": delivery.dropoff_address},
        )

    @staticmethod
    def delivery_completed(user, delivery):
        NotificationService.emit(
            user, "delivery_completed", "Delivery Completed! 🎉",
            f"Great job! You earned ${delivery.price} for this delivery.",
            data={
                "delivery_id": delivery.pk,
                "earning": str(delivery.price),
                "dropoff_address": delivery.dropoff_address,
            },
            priority="high",
            action_button={"text": "View Earnings", "action": "view_earnings",
                           "data": {"delivery_id": delivery.pk}},
        )

    @staticmethod
    def delivery_photo_uploaded(user, delivery, kind):
        NotificationService.emit(
            user, "delivery_photo_uploaded", "Photo Uploaded",
            f"Your {kind} photo for delivery #{delivery.pk} was saved.",
            data={"delivery_id": delivery.pk, "photo_type": kind},
            priority="low",
        )

    @staticmethod
    def payment_success(user, amount, description=""):
        amount = Decimal(amount)
        suffix = f" for {description}" if description else ""
        NotificationService.emit(
            user, "payment_success", "Payment Received 💰",
            f"You've received ${amount}{suffix}.",
            data={"amount": str(amount), "description": description},
            priority="high",
            action_button={"text": "View Earnings", "action": "view_earnings", "data": {}},
        )

    @staticmethod
    def availability_changed(user, available):
        NotificationService.emit(
            user, "general", "You're online" if available else "You're offline",
            "New deliveries will show up in your feed." if available
            else "You won't see new deliveries until you go online again.",
            data={"is_available": available},
            priority="low",
        )


class OTPService:
    """
    Issues and checks one-time phone codes. Codes live in the database;
    the per-phone request budget lives in the cache.
    """

    @staticmethod
    def generate_otp():
        # Cryptographically secure RNG (6 digits)
        return str(secrets.randbelow(900000) + 100000)

    @staticmethod
    def _check_rate_limit(phone):
        rate_key = f"otp_rate:{phone}"
        cache.add(rate_key, 0, timeout=3600)
        try:
            attempts = cache.incr(rate_key)
        except ValueError:
            # Key expired between add() and incr()
            cache.set(rate_key, 1, timeout=3600)
            attempts = 1
        if attempts > settings.OTP_MAX_REQUESTS_PER_HOUR:
            raise RateLimited("Too many verification requests. Try again later.")

    @staticmethod
    def issue(phone: str, purpose: str = DRIVER_REGISTRATION):
        """
        Generates a fresh code, invalidating any earlier one for the same
        phone and purpose, and queues the SMS once the row is committed.
        """
        OTPService._check_rate_limit(phone)

        with transaction.atomic():
            otp = OTPService.generate_otp()

            if settings.DEBUG:
                logger.info(f"[DEV OTP] Phone: {phone} Code: {otp}")

            PhoneVerificationCode.objects.filter(phone=phone, purpose=purpose).delete()
            record = PhoneVerificationCode.objects.create(
                phone=phone,
                code=otp,
                purpose=purpose,
                expires_at=timezone.now() + timedelta(seconds=settings.OTP_EXPIRY_SECONDS),
            )

            minutes = max(settings.OTP_EXPIRY_SECONDS // 60, 1)
            msg = f"Your Errand verification code is {otp}. Valid for {minutes} mins."
            transaction.on_commit(lambda: send_otp_sms.delay(phone, msg))

        return record

    @staticmethod
    def verify(phone: str, code: str, purpose: str = DRIVER_REGISTRATION) -> bool:
        """
        Consumes a matching unexpired code. Any failure is InvalidCode;
        a code stops working after OTP_MAX_ATTEMPTS wrong guesses.
        """
        record = (
            PhoneVerificationCode.objects
            .filter(phone=phone, purpose=purpose, expires_at__gt=timezone.now())
            .order_by("-created_at")
            .first()
        )
        if record is None:
            raise InvalidCode("Verification code not found or expired")

        if record.attempts >= settings.OTP_MAX_ATTEMPTS:
            raise InvalidCode("Too many attempts. Request a new code.", code="otp_limit")

        # Constant-time; bytes so non-ASCII input is a mismatch rather than a TypeError
        if not secrets.compare_digest(record.code.encode(), str(code).encode()):
            PhoneVerificationCode.objects.filter(pk=record.pk).update(attempts=F("attempts") + 1)
            raise InvalidCode("Invalid verification code")

        # Consumed: a replay of the same code finds nothing
        deleted, _ = PhoneVerificationCode.objects.filter(pk=record.pk).delete()
        if not deleted:
            raise InvalidCode("Verification code already used")
        return True
