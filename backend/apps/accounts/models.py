from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone
from .managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Login identity, keyed by phone. A driver gets one of these as soon as
    the phone is verified; email and password arrive with basic info.
    """
    phone = models.CharField(max_length=20, unique=True, db_index=True)
    # NULL rather than "" so the unique index ignores drivers without email
    email = models.EmailField(unique=True, blank=True, null=True)

    first_name = models.CharField(max_length=50, blank=True)
    last_name = models.CharField(max_length=50, blank=True)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    created_at = models.DateTimeField(default=timezone.now)

    objects = UserManager()

    USERNAME_FIELD = "phone"
    REQUIRED_FIELDS = []

    @property
    def full_name(self):
        return " ".join(filter(None, (self.first_name, self.last_name)))

    def __str__(self):
        return self.phone


class UserRole(models.Model):
    """Capability flags; one user may hold several (sender and driver)."""
    ROLE_CHOICES = (
        ("sender", "Sender"),
        ("driver", "Driver"),
        ("staff", "Operations Staff"),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="roles")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)

    class Meta:
        unique_together = ("user", "role")

    def __str__(self):
        return f"{self.user.phone}:{self.role}"
