# apps/accounts/managers.py
from django.contrib.auth.base_user import BaseUserManager


class UserManager(BaseUserManager):
    """Phone-keyed users. Email is optional and stored normalized."""

    def _build(self, phone, password, **extra_fields):
        phone = (phone or "").strip()
        if not phone:
            raise ValueError("Phone number is required")

        email = extra_fields.pop("email", None)
        user = self.model(
            phone=phone,
            email=self.normalize_email(email) if email else None,
            **extra_fields,
        )
        # No password until basic info is completed; login stays closed meanwhile
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, phone, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._build(phone, password, **extra_fields)

    def create_superuser(self, phone, password, **extra_fields):
        for flag in ("is_staff", "is_superuser"):
            if extra_fields.setdefault(flag, True) is not True:
                raise ValueError(f"Superuser must have {flag}=True.")
        return self._build(phone, password, **extra_fields)
