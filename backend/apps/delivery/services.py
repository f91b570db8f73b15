# apps/delivery/services.py
import logging
import math

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.core.storage import blob_record, get_document_store, validate_upload
from apps.drivers.models import Driver
from apps.notifications.services import NotificationService
from apps.utils.exceptions import (
    Conflict,
    InvalidInput,
    InvalidState,
    InvalidTransition,
    NotAvailable,
    NotFound,
)
from .models import (
    ACCEPTED,
    ACTIVE_STATUSES,
    COMPLETED,
    IN_TRANSIT,
    PHOTO_KINDS,
    UPCOMING,
    Delivery,
)

logger = logging.getLogger(__name__)

# Statuses in which each photo kind may be attached
PHOTO_WINDOWS = {
    "dropoff": (IN_TRANSIT,),
    "escrow": (ACCEPTED, IN_TRANSIT),
}


class DeliveryDirectory:
    """Read side: what a driver can see."""

    @staticmethod
    def list_available():
        return (
            Delivery.objects
            .filter(status=UPCOMING, driver__isnull=True)
            .order_by("-created_at", "-pk")
        )

    @staticmethod
    def active_for(driver):
        return (
            Delivery.objects
            .filter(driver=driver, status__in=ACTIVE_STATUSES)
            .order_by("-accepted_at")
            .first()
        )

    @staticmethod
    def history(driver, page=1, limit=None):
        """
        Every delivery ever claimed by `driver`, newest first.
        A page past the end yields an empty result list, not an error.
        """
        if limit is None:
            limit = settings.DELIVERY_HISTORY_DEFAULT_LIMIT
        try:
            page = int(page)
            limit = int(limit)
        except (TypeError, ValueError):
            raise InvalidInput("page and limit must be integers")
        if page < 1 or limit < 1:
            raise InvalidInput("page and limit must be positive")
        limit = min(limit, settings.DELIVERY_HISTORY_MAX_LIMIT)

        qs = Delivery.objects.filter(driver=driver).order_by("-created_at", "-pk")
        total = qs.count()
        offset = (page - 1) * limit
        return {
            "results": list(qs[offset:offset + limit]),
            "current_page": page,
            "total_pages": math.ceil(total / limit) if total else 0,
            "total_deliveries": total,
        }


class DeliveryService:
    """
    Lifecycle transitions. Each one is a single conditional UPDATE whose
    WHERE clause carries the precondition; the matched row count is the
    outcome. Nothing is read first and written later.
    """

    @staticmethod
    @transaction.atomic
    def claim(driver, delivery_id):
        # Fast rejection only; the unique constraint is the real guard
        if DeliveryDirectory.active_for(driver) is not None:
            raise Conflict("You already have an active delivery. Complete it first.")

        now = timezone.now()
        try:
            with transaction.atomic():
                claimed = Delivery.objects.filter(
                    pk=delivery_id, status=UPCOMING, driver__isnull=True
                ).update(driver=driver, status=ACCEPTED, accepted_at=now, updated_at=now)
        except IntegrityError:
            logger.info(f"Driver {driver.pk} lost an active-delivery race on delivery {delivery_id}")
            raise Conflict("You already have an active delivery. Complete it first.")

        if not claimed:
            raise NotAvailable("Delivery is no longer available")

        Driver.objects.filter(pk=driver.pk).update(total_deliveries=F("total_deliveries") + 1)

        delivery = Delivery.objects.get(pk=delivery_id)
        logger.info(f"Delivery {delivery.pk} claimed by driver {driver.pk}")
        NotificationService.delivery_accepted(driver.user, delivery)
        return delivery

    @staticmethod
    def _transition(driver, delivery_id, from_status, to_status, stamp_field):
        now = timezone.now()
        moved = Delivery.objects.filter(
            pk=delivery_id, driver=driver, status=from_status
        ).update(status=to_status, updated_at=now, **{stamp_field: now})

        if not moved:
            if not Delivery.objects.filter(pk=delivery_id).exists():
                raise NotFound("Delivery not found")
            raise InvalidTransition(
                f"Delivery must be {from_status} and assigned to you",
                expected_status=from_status,
            )
        return Delivery.objects.get(pk=delivery_id)

    @staticmethod
    @transaction.atomic
    def start(driver, delivery_id):
        delivery = DeliveryService._transition(driver, delivery_id, ACCEPTED, IN_TRANSIT, "started_at")
        logger.info(f"Delivery {delivery.pk} in transit")
        NotificationService.delivery_started(driver.user, delivery)
        return delivery

    @staticmethod
    @transaction.atomic
    def complete(driver, delivery_id):
        delivery = DeliveryService._transition(driver, delivery_id, IN_TRANSIT, COMPLETED, "completed_at")
        logger.info(f"Delivery {delivery.pk} completed by driver {driver.pk}")

        NotificationService.delivery_completed(driver.user, delivery)
        if delivery.price and delivery.price > 0:
            NotificationService.payment_success(driver.user, delivery.price, "delivery completion")
        return delivery

    # ------------------------------------------------------------------
    # Photos
    # ------------------------------------------------------------------
    @staticmethod
    def _owned(driver, delivery_id, lock=False):
        qs = Delivery.objects.select_for_update() if lock else Delivery.objects
        delivery = qs.filter(pk=delivery_id, driver=driver).first()
        if delivery is None:
            raise NotFound("Delivery not found")
        return delivery

    @staticmethod
    def _check_photo_window(delivery, kind):
        if delivery.status not in PHOTO_WINDOWS[kind]:
            raise InvalidState(
                f"Cannot upload {kind} photo while delivery is {delivery.status}",
                status=delivery.status,
            )

    @staticmethod
    def upload_photo(driver, delivery_id, kind, upload, store=None):
        if kind not in PHOTO_KINDS:
            raise InvalidInput(f"Invalid photo type. Allowed: {', '.join(PHOTO_KINDS)}")
        validate_upload(upload, allow_pdf=False)
        store = store or get_document_store()

        delivery = DeliveryService._owned(driver, delivery_id)
        DeliveryService._check_photo_window(delivery, kind)

        # A failed upload raises here, before the prior photo is touched
        blob = store.upload(upload, folder=f"deliveries/{delivery.pk}/{kind}")

        try:
            with transaction.atomic():
                delivery = DeliveryService._owned(driver, delivery_id, lock=True)
                DeliveryService._check_photo_window(delivery, kind)

                photos = dict(delivery.photos or {})
                previous = photos.get(kind)
                photos[kind] = blob_record(blob, upload)
                delivery.photos = photos
                delivery.save(update_fields=["photos", "updated_at"])

                if previous and previous.get("reference"):
                    old_reference = previous["reference"]
                    transaction.on_commit(lambda: store.discard(old_reference))

                NotificationService.delivery_photo_uploaded(driver.user, delivery, kind)
        except Exception:
            store.discard(blob.reference)
            raise

        return delivery

    @staticmethod
    def get_photos(driver, delivery_id):
        delivery = DeliveryService._owned(driver, delivery_id)
        return {kind: (delivery.photos or {}).get(kind) for kind in PHOTO_KINDS}

    @staticmethod
    def delete_photo(driver, delivery_id, kind, store=None):
        if kind not in PHOTO_KINDS:
            raise InvalidInput(f"Invalid photo type. Allowed: {', '.join(PHOTO_KINDS)}")
        store = store or get_document_store()

        with transaction.atomic():
            delivery = DeliveryService._owned(driver, delivery_id, lock=True)
            photos = dict(delivery.photos or {})
            record = photos.pop(kind, None)
            if record is None:
                raise NotFound(f"No {kind} photo on this delivery")
            delivery.photos = photos
            delivery.save(update_fields=["photos", "updated_at"])

            reference = record.get("reference")
            transaction.on_commit(lambda: store.discard(reference))

        return delivery
