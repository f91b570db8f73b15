import re

from django.db import transaction
from apps.utils.exceptions import InvalidInput
from .models import User, UserRole

PHONE_RE = re.compile(r"^\+?[1-9]\d{6,14}$")


class AccountService:

    @staticmethod
    def normalize_phone(phone):
        """
        Strips spaces, dashes and brackets so "+1 (555) 010-2000" and
        "+15550102000" address the same account.
        """
        if not phone:
            raise InvalidInput("Phone number is required")
        cleaned = re.sub(r"[\s\-().]", "", str(phone))
        if not PHONE_RE.match(cleaned):
            raise InvalidInput("Invalid phone number format")
        return cleaned

    @staticmethod
    def normalize_email(email):
        return User.objects.normalize_email(email).lower() if email else email

    @staticmethod
    @transaction.atomic
    def create_driver(phone):
        """
        Idempotent: an existing user (e.g. a sender) just gains the driver role.
        """
        formatted_phone = AccountService.normalize_phone(phone)

        user, created = User.objects.get_or_create(phone=formatted_phone)
        if created:
            user.set_unusable_password()
            user.save(update_fields=["password"])
        UserRole.objects.get_or_create(user=user, role="driver")
        return user

    @staticmethod
    def email_taken(email, exclude_user=None):
        qs = User.objects.filter(email__iexact=email)
        if exclude_user is not None:
            qs = qs.exclude(pk=exclude_user.pk)
        return qs.exists()
