# apps/drivers/services.py
import logging
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.accounts.services import AccountService
from apps.accounts.tokens import RegistrationPrincipal, TokenService
from apps.core.storage import blob_record, get_document_store, validate_upload
from apps.delivery.models import ACTIVE_STATUSES
from apps.notifications.services import DRIVER_REGISTRATION, NotificationService, OTPService
from apps.utils.exceptions import (
    Conflict,
    IncompletePrerequisites,
    InvalidCode,
    InvalidInput,
    InvalidState,
    NotFound,
)
from . import registration as reg
from .models import Driver

logger = logging.getLogger(__name__)

User = get_user_model()


class RegistrationService:
    """
    Onboarding step machine.

    Every operation re-reads the driver row and judges its own
    preconditions from field values; the step claimed by the presented
    token is advisory and only ever raises the reported step.
    """

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _find_driver(principal):
        qs = Driver.objects.select_related("user")
        driver = None
        if principal.driver_id is not None:
            driver = qs.filter(pk=principal.driver_id).first()
        if driver is None and principal.phone:
            driver = qs.filter(user__phone=principal.phone).first()
        return driver

    @staticmethod
    def _resolve_driver(principal, create=True):
        """
        Driver addressed by the token: by id when present, else by phone.
        A fresh registration gets a record at verified_phone on first write.
        """
        driver = RegistrationService._find_driver(principal)
        if driver is not None:
            return driver
        if not create or not principal.phone:
            raise NotFound("Driver not found")

        user = AccountService.create_driver(principal.phone)
        driver, created = Driver.objects.get_or_create(user=user)
        if created:
            logger.info(f"Driver record created for user {user.pk}")
        return Driver.objects.select_related("user").get(pk=driver.pk)

    @staticmethod
    def _advance(driver, target):
        """
        Moves the stored step forward to `target`, never backwards.
        Single conditional UPDATE: a row already at or past `target` is untouched.
        """
        updated = Driver.objects.filter(
            pk=driver.pk, registration_step__in=reg.steps_before(target)
        ).update(registration_step=target, updated_at=timezone.now())
        if updated:
            driver.registration_step = target
        else:
            driver.refresh_from_db(fields=["registration_step"])
        return bool(updated)

    @staticmethod
    def _step_payload(driver, principal, **extra):
        """Response for every successful step: fresh continuation token plus what comes next."""
        snapshot = reg.RegistrationSnapshot.of(driver)
        step = reg.effective_step(driver.registration_step, principal.step if principal else None)
        payload = {
            "driver_id": driver.pk,
            "registration_step": step,
            "next_step": reg.next_step(step),
            "allowed_actions": reg.allowed_actions(snapshot),
            "progress": reg.progress(snapshot),
            "token": TokenService.registration_token_for(driver, step),
        }
        payload.update(extra)
        return payload

    # ------------------------------------------------------------------
    # Phone verification
    # ------------------------------------------------------------------
    @staticmethod
    def initiate_phone_verification(phone):
        phone = AccountService.normalize_phone(phone)
        if Driver.objects.filter(user__phone=phone).exists():
            raise Conflict("Phone number already registered")

        OTPService.issue(phone, purpose=DRIVER_REGISTRATION)
        return {"phone": phone, "expires_in": settings.OTP_EXPIRY_SECONDS}

    @staticmethod
    def resend_code(phone):
        """Same as initiate, without the already-registered check, to resume a registration."""
        phone = AccountService.normalize_phone(phone)
        OTPService.issue(phone, purpose=DRIVER_REGISTRATION)
        return {"phone": phone, "expires_in": settings.OTP_EXPIRY_SECONDS}

    @staticmethod
    def confirm_phone_verification(phone, code):
        phone = AccountService.normalize_phone(phone)
        OTPService.verify(phone, code, purpose=DRIVER_REGISTRATION)

        driver = Driver.objects.select_related("user").filter(user__phone=phone).first()
        if driver is None:
            return {
                "phone": phone,
                "registration_step": reg.VERIFIED_PHONE,
                "next_step": reg.next_step(reg.VERIFIED_PHONE),
                "allowed_actions": reg.allowed_actions(reg.RegistrationSnapshot(reg.VERIFIED_PHONE)),
                "token": TokenService.registration_token(phone, step=reg.VERIFIED_PHONE),
            }

        # Resuming: the token picks up wherever the record already is
        return RegistrationService._step_payload(
            driver, RegistrationPrincipal(phone=phone, driver_id=driver.pk, step=reg.VERIFIED_PHONE)
        )

    # ------------------------------------------------------------------
    # Profile steps
    # ------------------------------------------------------------------
    @staticmethod
    def complete_basic_info(principal, first_name, last_name, email, password):
        email = AccountService.normalize_email(email)

        with transaction.atomic():
            driver = RegistrationService._resolve_driver(principal)
            user = User.objects.select_for_update().get(pk=driver.user_id)

            if AccountService.email_taken(email, exclude_user=user):
                raise Conflict("Email already registered")

            changed = [
                label for label, attr, value in (
                    ("first name", "first_name", first_name),
                    ("last name", "last_name", last_name),
                    ("email", "email", email),
                )
                if getattr(user, attr) != value
            ]
            user.first_name = first_name
            user.last_name = last_name
            user.email = email

            # Hashing is deliberately slow; an identical resubmission keeps the stored hash
            if not user.has_usable_password() or not user.check_password(password):
                user.set_password(password)
                changed.append("password")

            try:
                with transaction.atomic():
                    user.save()
            except IntegrityError:
                raise Conflict("Email already registered")

            driver.user = user
            RegistrationService._advance(driver, reg.BASIC_INFO_COMPLETED)
            NotificationService.profile_updated(user, changed)

        return RegistrationService._step_payload(driver, principal)

    @staticmethod
    def setup_earn_type(principal, earn_type, city, referral_code=None):
        if earn_type not in reg.EARN_TYPES:
            raise InvalidInput(
                f"Invalid earn type. Choose one of: {', '.join(reg.EARN_TYPES)}"
            )
        city = (city or "").strip()
        if not city:
            raise InvalidInput("City is required")

        with transaction.atomic():
            driver = RegistrationService._resolve_driver(principal)
            driver.earn_type = earn_type
            driver.city = city
            update_fields = ["earn_type", "city", "updated_at"]
            if referral_code is not None:
                driver.referral_code = referral_code.strip()
                update_fields.append("referral_code")
            driver.save(update_fields=update_fields)

            RegistrationService._advance(driver, reg.EARN_TYPE_COMPLETED)
            NotificationService.profile_updated(driver.user, ["earn type", "city"])

        return RegistrationService._step_payload(driver, principal)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    @staticmethod
    def upload_document(principal, document_type, upload, store=None):
        """
        Blob first, record second. A failed store leaves no record; a failed
        record write discards the fresh blob; the replaced blob is discarded
        once the new record is committed.
        """
        if document_type not in reg.DOCUMENT_TYPES:
            raise InvalidInput(
                f"Invalid document type. Allowed types: {', '.join(reg.DOCUMENT_TYPES)}"
            )
        validate_upload(upload)
        store = store or get_document_store()

        driver = RegistrationService._resolve_driver(principal)
        blob = store.upload(upload, folder=f"drivers/{driver.pk}/{document_type}")

        try:
            with transaction.atomic():
                driver = Driver.objects.select_for_update().select_related("user").get(pk=driver.pk)
                documents = dict(driver.documents or {})
                previous = documents.get(document_type)
                documents[document_type] = blob_record(blob, upload)
                driver.documents = documents
                driver.save(update_fields=["documents", "updated_at"])

                RegistrationService._advance(driver, reg.DOCUMENTS_UPLOADING)
                NotificationService.document_uploaded(driver.user, document_type)

                if previous and previous.get("reference"):
                    old_reference = previous["reference"]
                    transaction.on_commit(lambda: store.discard(old_reference))
        except Exception:
            store.discard(blob.reference)
            raise

        snapshot = reg.RegistrationSnapshot.of(driver)
        warnings = []
        if not snapshot.has_basic_info:
            warnings.append("Basic information is not complete yet")
        if not snapshot.has_earn_type:
            warnings.append("Earn type and city are not set yet")

        return RegistrationService._step_payload(
            driver,
            principal,
            document={document_type: driver.documents[document_type]},
            warnings=warnings,
        )

    @staticmethod
    def delete_document(principal, document_type, store=None):
        if document_type not in reg.DOCUMENT_TYPES:
            raise InvalidInput("Invalid document type")
        store = store or get_document_store()

        driver = RegistrationService._resolve_driver(principal, create=False)
        with transaction.atomic():
            driver = Driver.objects.select_for_update().select_related("user").get(pk=driver.pk)
            documents = dict(driver.documents or {})
            record = documents.pop(document_type, None)
            if record is None:
                raise NotFound("Document not found")
            if driver.verified and document_type in reg.REQUIRED_DOCUMENTS:
                # Verification stands on these documents; they can be replaced, not removed
                raise InvalidState(
                    f"{document_type} is required for a verified driver; upload a replacement instead"
                )
            driver.documents = documents
            driver.save(update_fields=["documents", "updated_at"])

            reference = record.get("reference")
            # The record is gone either way; the blob delete is best-effort
            transaction.on_commit(lambda: store.discard(reference))

        return RegistrationService._step_payload(driver, principal, deleted=document_type)

    # ------------------------------------------------------------------
    # Completion and status
    # ------------------------------------------------------------------
    @staticmethod
    def finalize(principal):
        driver = RegistrationService._find_driver(principal)
        if driver is None:
            # Phone verified, nothing else recorded yet
            snapshot = reg.RegistrationSnapshot(stored_step=None)
            raise IncompletePrerequisites(
                reg.missing_prerequisites(snapshot), allowed_actions=reg.allowed_actions(snapshot)
            )

        with transaction.atomic():
            driver = Driver.objects.select_for_update().select_related("user").get(pk=driver.pk)
            snapshot = reg.RegistrationSnapshot.of(driver)
            missing = reg.missing_prerequisites(snapshot)
            if missing:
                raise IncompletePrerequisites(missing, allowed_actions=reg.allowed_actions(snapshot))

            newly_completed = Driver.objects.filter(pk=driver.pk).exclude(
                verified=True, registration_step=reg.COMPLETED
            ).update(verified=True, registration_step=reg.COMPLETED, updated_at=timezone.now())
            driver.refresh_from_db(fields=["verified", "registration_step"])

            if newly_completed:
                logger.info(f"Driver {driver.pk} completed registration")
                NotificationService.registration_completed(driver.user)
                NotificationService.verification_approved(driver.user)

        return {
            "driver_id": driver.pk,
            "registration_step": driver.registration_step,
            "verified": driver.verified,
            "token": TokenService.session_token(driver),
            "token_type": "session",
        }

    @staticmethod
    def get_status(principal):
        driver = RegistrationService._find_driver(principal)
        if driver is None:
            snapshot = reg.RegistrationSnapshot(stored_step=None)
            step = reg.effective_step(None, principal.step)
            return {
                "driver_id": None,
                "phone": principal.phone,
                "registration_step": step,
                "next_step": reg.next_step(step),
                "verified": False,
                "progress": reg.progress(snapshot),
                "completed_steps": reg.completed_milestones(snapshot),
                "allowed_actions": reg.allowed_actions(snapshot),
                "missing": reg.missing_prerequisites(snapshot),
                "documents": {},
            }

        snapshot = reg.RegistrationSnapshot.of(driver)
        step = reg.effective_step(driver.registration_step, principal.step)
        return {
            "driver_id": driver.pk,
            "phone": driver.user.phone,
            "registration_step": step,
            "next_step": reg.next_step(step),
            "verified": driver.verified,
            "progress": reg.progress(snapshot),
            "completed_steps": reg.completed_milestones(snapshot),
            "allowed_actions": reg.allowed_actions(snapshot),
            "missing": reg.missing_prerequisites(snapshot),
            "documents": {
                key: {
                    "original_name": record.get("original_name"),
                    "uploaded_at": record.get("uploaded_at"),
                    "url": record.get("url"),
                }
                for key, record in (driver.documents or {}).items()
            },
            "profile": {
                "first_name": driver.user.first_name,
                "last_name": driver.user.last_name,
                "email": driver.user.email,
                "earn_type": driver.earn_type,
                "city": driver.city,
            },
        }


class DriverService:
    """Profile actions for drivers holding a session token."""

    EDITABLE_FIELDS = ("first_name", "last_name", "email", "earn_type", "city", "referral_code")

    @staticmethod
    @transaction.atomic
    def login(email, password):
        """
        A verified driver gets a session token; anyone still onboarding gets
        a continuation token to resume where they left off.
        """
        email = AccountService.normalize_email(email)
        user = User.objects.filter(email__iexact=email).first()
        if user is None or not user.is_active or not user.check_password(password):
            raise InvalidCode("Invalid credentials", code="invalid_credentials")

        driver = Driver.objects.select_related("user").filter(user=user).first()
        if driver is None:
            raise InvalidCode("Invalid credentials", code="invalid_credentials")

        user.last_login = timezone.now()
        user.save(update_fields=["last_login"])

        principal = RegistrationPrincipal(phone=user.phone, driver_id=driver.pk)
        status = RegistrationService.get_status(principal)
        if driver.verified:
            return {"token": TokenService.session_token(driver), "token_type": "session", "registration": status}

        return {
            "token": TokenService.registration_token_for(driver, status["registration_step"]),
            "token_type": "registration",
            "registration": status,
        }

    @staticmethod
    @transaction.atomic
    def update_profile(driver, **changes):
        user = User.objects.select_for_update().get(pk=driver.user_id)
        changed = []

        if "email" in changes:
            email = AccountService.normalize_email(changes["email"])
            if email != user.email:
                if AccountService.email_taken(email, exclude_user=user):
                    raise Conflict("Email already registered")
                user.email = email
                changed.append("email")

        for attr in ("first_name", "last_name"):
            if attr in changes and changes[attr] != getattr(user, attr):
                setattr(user, attr, changes[attr])
                changed.append(attr.replace("_", " "))

        if "earn_type" in changes and changes["earn_type"] != driver.earn_type:
            if changes["earn_type"] not in reg.EARN_TYPES:
                raise InvalidInput("Invalid earn type")
            driver.earn_type = changes["earn_type"]
            changed.append("earn type")

        for attr in ("city", "referral_code"):
            if attr in changes and changes[attr] != getattr(driver, attr):
                setattr(driver, attr, changes[attr])
                changed.append(attr.replace("_", " "))

        if changed:
            try:
                with transaction.atomic():
                    user.save()
            except IntegrityError:
                raise Conflict("Email already registered")
            driver.save()
            driver.user = user
            NotificationService.profile_updated(user, changed)

        return driver

    @staticmethod
    def set_availability(driver, available: bool):
        """
        Going offline is refused while a delivery is accepted or in transit.
        """
        if not available and driver.deliveries.filter(status__in=ACTIVE_STATUSES).exists():
            raise InvalidState("Cannot go offline while you have an active delivery.")

        if driver.is_available != available:
            driver.is_available = available
            driver.save(update_fields=["is_available", "updated_at"])
            NotificationService.availability_changed(driver.user, available)
        return driver

    @staticmethod
    def update_location(driver, lat, lng):
        try:
            lat = Decimal(str(lat))
            lng = Decimal(str(lng))
        except (TypeError, ValueError, ArithmeticError):
            raise InvalidInput("Invalid coordinates")

        if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
            raise InvalidInput("Coordinates out of bounds")

        driver.current_lat = lat.quantize(Decimal("0.000001"))
        driver.current_lng = lng.quantize(Decimal("0.000001"))
        driver.location_updated_at = timezone.now()
        driver.save(update_fields=["current_lat", "current_lng", "location_updated_at", "updated_at"])
        return driver
