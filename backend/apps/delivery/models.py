# apps/delivery/models.py
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.drivers.models import Driver

UPCOMING = "upcoming"
PENDING = "pending"
ACCEPTED = "accepted"
IN_TRANSIT = "in-transit"
COMPLETED = "completed"
CANCELLED = "cancelled"

ACTIVE_STATUSES = (ACCEPTED, IN_TRANSIT)
TERMINAL_STATUSES = (COMPLETED, CANCELLED)

PHOTO_KINDS = ("dropoff", "escrow")


class Delivery(models.Model):
    STATUS_CHOICES = (
        (UPCOMING, "Upcoming"),
        (PENDING, "Pending"),
        (ACCEPTED, "Accepted"),
        (IN_TRANSIT, "In Transit"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
    )

    VEHICLE_TYPE_CHOICES = (
        ("motorcycle", "Motorcycle"),
        ("car", "Car"),
        ("van", "Van"),
        ("truck", "Truck"),
    )

    ESCROW_STATUS_CHOICES = (
        ("pending_verification", "Pending Verification"),
        ("verified", "Verified"),
        ("released", "Released"),
        ("refunded", "Refunded"),
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sent_deliveries",
    )

    # NULL means unclaimed
    driver = models.ForeignKey(
        Driver,
        on_delete=models.PROTECT,
        related_name="deliveries",
        null=True,
        blank=True,
    )

    pickup_address = models.CharField(max_length=255)
    pickup_lat = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_lng = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_address = models.CharField(max_length=255)
    dropoff_lat = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_lng = models.DecimalField(max_digits=9, decimal_places=6)

    vehicle_type = models.CharField(max_length=20, choices=VEHICLE_TYPE_CHOICES, default="car")
    scheduled_time = models.DateTimeField(null=True, blank=True)

    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=UPCOMING, db_index=True)

    escrow_active = models.BooleanField(default=False)
    escrow_status = models.CharField(
        max_length=30, choices=ESCROW_STATUS_CHOICES, default="pending_verification"
    )
    escrow_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    receiver_name = models.CharField(max_length=100, blank=True)
    receiver_phone = models.CharField(max_length=20, blank=True)
    receiver_note = models.TextField(blank=True)

    # {"dropoff": {...}, "escrow": {...}}; each {reference, url, original_name, uploaded_at}
    photos = models.JSONField(default=dict, blank=True)

    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            # A driver holds at most one accepted/in-transit delivery
            models.UniqueConstraint(
                fields=["driver"],
                condition=Q(status__in=ACTIVE_STATUSES),
                name="one_active_delivery_per_driver",
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "-created_at"],
                name="available_delivery_idx",
                condition=Q(driver__isnull=True),
            ),
            models.Index(fields=["driver", "-created_at"], name="driver_history_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.total_cost:
            self.total_cost = (self.price or 0) + (self.escrow_fee if self.escrow_active else 0)
        super().save(*args, **kwargs)

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    def __str__(self):
        return f"Delivery {self.pk} - {self.status}"
