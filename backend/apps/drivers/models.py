# apps/drivers/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class Driver(models.Model):
    """
    Onboarding state and working profile of a driver.

    `documents` maps a document-type key to its record
    {reference, url, original_name, content_type, size, uploaded_at};
    a missing key means the document was never uploaded.
    """
    STEP_CHOICES = (
        ("verified_phone", "Phone verified"),
        ("basic_info_completed", "Basic info completed"),
        ("earn_type_completed", "Earn type completed"),
        ("documents_uploading", "Uploading documents"),
        ("completed", "Completed"),
    )

    EARN_TYPE_CHOICES = (
        ("car", "Car"),
        ("scooter", "Scooter"),
        ("bicycle", "Bicycle"),
        ("truck", "Truck"),
    )

    DOCUMENT_TYPE_CHOICES = (
        ("driversLicense", "Driver's licence"),
        ("profilePhoto", "Profile photo"),
        ("socialInsuranceNumber", "Social insurance number"),
        ("vehicleRegistration", "Vehicle registration"),
        ("vehicleInsurance", "Vehicle insurance"),
    )

    user = models.OneToOneField(
        User, on_delete=models.CASCADE, related_name="driver_profile"
    )

    registration_step = models.CharField(
        max_length=30, choices=STEP_CHOICES, default="verified_phone", db_index=True
    )
    verified = models.BooleanField(default=False)

    earn_type = models.CharField(max_length=20, choices=EARN_TYPE_CHOICES, blank=True)
    city = models.CharField(max_length=100, blank=True)
    referral_code = models.CharField(max_length=50, blank=True)

    is_available = models.BooleanField(default=False)
    current_lat = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    current_lng = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    location_updated_at = models.DateTimeField(null=True, blank=True)

    total_deliveries = models.PositiveIntegerField(default=0)

    documents = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["verified", "is_available"], name="driver_available_idx"),
        ]

    @property
    def phone(self):
        return self.user.phone

    def __str__(self):
        return f"Driver {self.user.phone}"
