# apps/notifications/models.py
from django.db import models
from django.utils import timezone
from django.conf import settings


class PhoneVerificationCode(models.Model):
    """
    One-time code bound to a phone. Deleted on successful use or when a new
    code is issued; expired rows are purged by a beat task.
    """
    PURPOSE_CHOICES = (
        ("driver_registration", "Driver registration"),
    )

    phone = models.CharField(max_length=20, db_index=True)
    code = models.CharField(max_length=6)
    purpose = models.CharField(max_length=30, choices=PURPOSE_CHOICES, default="driver_registration")

    attempts = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        indexes = [
            models.Index(fields=["phone", "purpose", "created_at"], name="notificatio_phone_8c1f0e_idx"),
        ]

    def is_expired(self):
        return timezone.now() >= self.expires_at

    def __str__(self):
        return f"{self.phone} ({self.purpose})"


class Notification(models.Model):
    TYPE_CHOICES = (
        ("delivery_available", "Delivery available"),
        ("delivery_accepted", "Delivery accepted"),
        ("delivery_started", "Delivery started"),
        ("delivery_completed", "Delivery completed"),
        ("delivery_cancelled", "Delivery cancelled"),
        ("delivery_photo_required", "Delivery photo required"),
        ("delivery_photo_uploaded", "Delivery photo uploaded"),
        ("registration_completed", "Registration completed"),
        ("profile_updated", "Profile updated"),
        ("document_uploaded", "Document uploaded"),
        ("document_verified", "Document verified"),
        ("verification_pending", "Verification pending"),
        ("verification_approved", "Verification approved"),
        ("verification_rejected", "Verification rejected"),
        ("payment_success", "Payment success"),
        ("payment_failed", "Payment failed"),
        ("account_suspended", "Account suspended"),
        ("account_reactivated", "Account reactivated"),
        ("new_feature", "New feature"),
        ("maintenance_notice", "Maintenance notice"),
        ("new_message", "New message"),
        ("conversation_started", "Conversation started"),
        ("general", "General"),
    )

    PRIORITY_CHOICES = (
        ("low", "Low"),
        ("medium", "Medium"),
        ("high", "High"),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )

    type = models.CharField(max_length=40, choices=TYPE_CHOICES, db_index=True)
    title = models.CharField(max_length=100)
    message = models.CharField(max_length=500)
    data = models.JSONField(default=dict, blank=True)

    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="medium")
    # {"text": ..., "action": ..., "data": {...}}
    action_button = models.JSONField(null=True, blank=True)

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_read", "-created_at"], name="notificatio_user_id_4b7a2d_idx"),
        ]

    def __str__(self):
        return f"{self.type} -> {self.user_id}"
