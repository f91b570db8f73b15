# apps/drivers/tests.py
from decimal import Decimal
from itertools import product
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from apps.accounts.tokens import RegistrationPrincipal, TokenService
from apps.core.storage import StoredBlob
from apps.delivery.models import Delivery
from apps.notifications.models import Notification, PhoneVerificationCode
from apps.utils.exceptions import (
    Conflict,
    IncompletePrerequisites,
    InvalidCode,
    InvalidInput,
    InvalidState,
    NotFound,
    UploadFailed,
)
from . import registration as reg
from .models import Driver
from .services import DriverService, RegistrationService

User = get_user_model()


class FakeStore:
    """Records what the services ask of the blob store."""

    def __init__(self, fail=False):
        self.fail = fail
        self.uploaded = []
        self.discarded = []

    def upload(self, upload, folder):
        if self.fail:
            raise UploadFailed("Could not store the uploaded file")
        reference = f"{folder}/blob-{len(self.uploaded) + 1}"
        self.uploaded.append(reference)
        return StoredBlob(reference=reference, url=f"https://cdn.test/{reference}")

    def discard(self, reference):
        self.discarded.append(reference)
        return True


def image(name="photo.jpg"):
    return SimpleUploadedFile(name, b"\xff\xd8\xff fake image", content_type="image/jpeg")


def doc_record(reference="drivers/1/x/blob"):
    return {"reference": reference, "url": f"https://cdn.test/{reference}", "original_name": "x.jpg"}


class RegistrationRulesTestCase(SimpleTestCase):
    """The pure step machine."""

    def test_effective_step_takes_the_later(self):
        self.assertEqual(reg.effective_step(reg.EARN_TYPE_COMPLETED, reg.BASIC_INFO_COMPLETED), reg.EARN_TYPE_COMPLETED)
        self.assertEqual(reg.effective_step(reg.BASIC_INFO_COMPLETED, reg.DOCUMENTS_UPLOADING), reg.DOCUMENTS_UPLOADING)
        self.assertEqual(reg.effective_step(reg.COMPLETED, None), reg.COMPLETED)

    def test_effective_step_defaults_to_verified_phone(self):
        self.assertEqual(reg.effective_step(None, None), reg.VERIFIED_PHONE)
        self.assertEqual(reg.effective_step("garbage", "nonsense"), reg.VERIFIED_PHONE)

    def test_effective_step_never_below_either_input(self):
        for stored, claimed in product(reg.STEP_ORDER, repeat=2):
            step = reg.effective_step(stored, claimed)
            self.assertGreaterEqual(reg.step_index(step), reg.step_index(stored))
            self.assertGreaterEqual(reg.step_index(step), reg.step_index(claimed))

    def test_next_step(self):
        self.assertEqual(reg.next_step(reg.VERIFIED_PHONE), reg.BASIC_INFO_COMPLETED)
        self.assertIsNone(reg.next_step(reg.COMPLETED))

    def test_steps_before(self):
        self.assertEqual(reg.steps_before(reg.VERIFIED_PHONE), ())
        self.assertEqual(reg.steps_before(reg.EARN_TYPE_COMPLETED), (reg.VERIFIED_PHONE, reg.BASIC_INFO_COMPLETED))

    def test_allowed_actions_follow_fields_not_labels(self):
        snapshot = reg.RegistrationSnapshot(stored_step=reg.COMPLETED)
        self.assertEqual(
            reg.allowed_actions(snapshot),
            [reg.COMPLETE_BASIC_INFO, reg.SETUP_EARN_TYPE, reg.UPLOAD_DOCUMENTS],
        )

        ready = reg.RegistrationSnapshot(
            stored_step=reg.VERIFIED_PHONE, first_name="A", last_name="B", email="a@b.co",
            earn_type="car", city="Toronto", document_keys=frozenset(reg.REQUIRED_DOCUMENTS),
        )
        self.assertEqual(reg.allowed_actions(ready), [reg.COMPLETE_REGISTRATION])

    def test_progress(self):
        self.assertEqual(reg.progress(reg.RegistrationSnapshot(stored_step=None)), 20)
        partial = reg.RegistrationSnapshot(
            stored_step=None, first_name="A", last_name="B", email="a@b.co",
            document_keys=frozenset({"vehicleInsurance"}),
        )
        self.assertEqual(reg.progress(partial), 60)


class RegistrationServiceTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.phone = "+15550102000"
        self.store = FakeStore()

    def principal(self, driver=None, step=None):
        return RegistrationPrincipal(
            phone=self.phone, driver_id=driver.pk if driver else None, step=step
        )

    def basic_info(self, principal=None, email="dana@example.com", password="s3cret-pass"):
        return RegistrationService.complete_basic_info(
            principal or self.principal(), "Dana", "Reyes", email, password
        )

    def driver(self):
        return Driver.objects.select_related("user").get(user__phone=self.phone)

    # -- phone -------------------------------------------------------
    def test_phone_verification_issues_phone_token(self):
        RegistrationService.initiate_phone_verification("+1 555 010 2000")
        code = PhoneVerificationCode.objects.get(phone=self.phone).code

        result = RegistrationService.confirm_phone_verification(self.phone, code)

        principal = TokenService.decode_registration(result["token"])
        self.assertEqual(principal.phone, self.phone)
        self.assertIsNone(principal.driver_id)
        self.assertEqual(principal.step, reg.VERIFIED_PHONE)
        self.assertFalse(PhoneVerificationCode.objects.filter(phone=self.phone).exists())

    def test_wrong_code(self):
        RegistrationService.initiate_phone_verification(self.phone)
        with self.assertRaises(InvalidCode):
            RegistrationService.confirm_phone_verification(self.phone, "12")

    def test_registered_phone_conflicts(self):
        self.basic_info()
        with self.assertRaises(Conflict):
            RegistrationService.initiate_phone_verification(self.phone)

    def test_resend_resumes_at_stored_step(self):
        self.basic_info()
        RegistrationService.setup_earn_type(self.principal(), "car", "Toronto")

        RegistrationService.resend_code(self.phone)
        code = PhoneVerificationCode.objects.get(phone=self.phone).code
        result = RegistrationService.confirm_phone_verification(self.phone, code)

        principal = TokenService.decode_registration(result["token"])
        self.assertEqual(principal.driver_id, self.driver().pk)
        self.assertEqual(principal.step, reg.EARN_TYPE_COMPLETED)

    # -- basic info --------------------------------------------------
    def test_basic_info_creates_driver(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = self.basic_info()

        driver = self.driver()
        self.assertEqual(driver.registration_step, reg.BASIC_INFO_COMPLETED)
        self.assertEqual(driver.user.email, "dana@example.com")
        self.assertTrue(driver.user.check_password("s3cret-pass"))
        self.assertTrue(driver.user.roles.filter(role="driver").exists())
        self.assertEqual(result["next_step"], reg.EARN_TYPE_COMPLETED)
        self.assertEqual(TokenService.decode_registration(result["token"]).driver_id, driver.pk)
        self.assertTrue(Notification.objects.filter(user=driver.user, type="profile_updated").exists())

    def test_basic_info_email_conflict(self):
        User.objects.create_user(phone="+15550102999", email="dana@example.com")
        with self.assertRaises(Conflict):
            self.basic_info(email="Dana@Example.com")

    def test_identical_resubmission_keeps_password_hash(self):
        self.basic_info()
        stored_hash = self.driver().user.password

        self.basic_info(self.principal(self.driver()))
        self.assertEqual(self.driver().user.password, stored_hash)

        self.basic_info(self.principal(self.driver()), password="another-pass")
        self.assertNotEqual(self.driver().user.password, stored_hash)

    # -- earn type ---------------------------------------------------
    def test_earn_type_validation(self):
        with self.assertRaises(InvalidInput):
            RegistrationService.setup_earn_type(self.principal(), "rocket", "Toronto")
        self.assertFalse(Driver.objects.exists())

    def test_steps_never_regress(self):
        RegistrationService.setup_earn_type(self.principal(), "scooter", "Toronto")
        self.assertEqual(self.driver().registration_step, reg.EARN_TYPE_COMPLETED)

        # Basic info arriving late does not pull the step back
        result = self.basic_info(self.principal(step=reg.VERIFIED_PHONE))
        self.assertEqual(self.driver().registration_step, reg.EARN_TYPE_COMPLETED)
        self.assertEqual(result["registration_step"], reg.EARN_TYPE_COMPLETED)

        RegistrationService.upload_document(self.principal(), "vehicleInsurance", image(), store=self.store)
        RegistrationService.setup_earn_type(self.principal(), "car", "Ottawa")
        self.assertEqual(self.driver().registration_step, reg.DOCUMENTS_UPLOADING)

    # -- documents ---------------------------------------------------
    def test_upload_replaces_old_document(self):
        self.basic_info()
        with self.captureOnCommitCallbacks(execute=True):
            RegistrationService.upload_document(self.principal(), "profilePhoto", image(), store=self.store)
        first_ref = self.driver().documents["profilePhoto"]["reference"]

        with self.captureOnCommitCallbacks(execute=True):
            result = RegistrationService.upload_document(self.principal(), "profilePhoto", image(), store=self.store)

        second_ref = self.driver().documents["profilePhoto"]["reference"]
        self.assertNotEqual(first_ref, second_ref)
        self.assertEqual(self.store.uploaded, [first_ref, second_ref])
        self.assertEqual(self.store.discarded, [first_ref])
        self.assertEqual(result["registration_step"], reg.DOCUMENTS_UPLOADING)
        self.assertEqual(
            Notification.objects.filter(user=self.driver().user, type="document_uploaded").count(), 2
        )

    def test_upload_warns_about_missing_steps(self):
        result = RegistrationService.upload_document(self.principal(), "driversLicense", image(), store=self.store)
        self.assertEqual(len(result["warnings"]), 2)

    def test_invalid_document_type(self):
        with self.assertRaises(InvalidInput):
            RegistrationService.upload_document(self.principal(), "passport", image(), store=self.store)
        self.assertEqual(self.store.uploaded, [])

    def test_store_failure_writes_nothing(self):
        self.basic_info()
        with self.assertRaises(UploadFailed):
            RegistrationService.upload_document(
                self.principal(), "driversLicense", image(), store=FakeStore(fail=True)
            )
        self.assertEqual(self.driver().documents, {})
        self.assertEqual(self.driver().registration_step, reg.BASIC_INFO_COMPLETED)

    def test_failed_record_write_discards_fresh_blob(self):
        self.basic_info()
        with patch.object(RegistrationService, "_advance", side_effect=RuntimeError("db gone")):
            with self.assertRaises(RuntimeError):
                RegistrationService.upload_document(self.principal(), "driversLicense", image(), store=self.store)

        self.assertEqual(self.store.discarded, self.store.uploaded)
        self.assertEqual(self.driver().documents, {})

    def test_delete_document(self):
        self.basic_info()
        RegistrationService.upload_document(self.principal(), "driversLicense", image(), store=self.store)
        reference = self.driver().documents["driversLicense"]["reference"]

        with self.captureOnCommitCallbacks(execute=True):
            RegistrationService.delete_document(self.principal(), "driversLicense", store=self.store)

        self.assertNotIn("driversLicense", self.driver().documents)
        self.assertEqual(self.store.discarded, [reference])

        with self.assertRaises(NotFound):
            RegistrationService.delete_document(self.principal(), "driversLicense", store=self.store)

    def test_verified_driver_keeps_required_documents(self):
        self.basic_info()
        RegistrationService.setup_earn_type(self.principal(), "car", "Toronto")
        for doc in (*reg.REQUIRED_DOCUMENTS, "socialInsuranceNumber"):
            RegistrationService.upload_document(self.principal(), doc, image(), store=self.store)
        RegistrationService.finalize(self.principal())

        with self.assertRaises(InvalidState):
            RegistrationService.delete_document(self.principal(), "driversLicense", store=self.store)

        driver = self.driver()
        self.assertTrue(driver.verified)
        self.assertIn("driversLicense", driver.documents)
        self.assertEqual(self.store.discarded, [])

        # Optional documents can still go
        RegistrationService.delete_document(self.principal(), "socialInsuranceNumber", store=self.store)
        self.assertNotIn("socialInsuranceNumber", self.driver().documents)

    # -- finalize ----------------------------------------------------
    def test_finalize_gate(self):
        """Succeeds only when names, email, earn type/city and both required documents are present."""
        for idx, (names, email, earn, docs) in enumerate(product((True, False), repeat=4)):
            with self.subTest(names=names, email=email, earn=earn, docs=docs):
                user = User.objects.create_user(
                    phone=f"+1555020{idx:04d}",
                    email=f"grid{idx}@example.com" if email else None,
                    first_name="Grid" if names else "",
                    last_name="Case" if names else "",
                )
                documents = {"driversLicense": doc_record()}
                if docs:
                    documents["profilePhoto"] = doc_record()
                # The label claims completion; only field values count
                driver = Driver.objects.create(
                    user=user,
                    registration_step=reg.COMPLETED,
                    earn_type="car" if earn else "",
                    city="Toronto" if earn else "",
                    documents=documents,
                )
                principal = RegistrationPrincipal(phone=user.phone, driver_id=driver.pk)

                if names and email and earn and docs:
                    result = RegistrationService.finalize(principal)
                    driver.refresh_from_db()
                    self.assertTrue(driver.verified)
                    self.assertEqual(driver.registration_step, reg.COMPLETED)
                    self.assertEqual(AccessToken(result["token"])["driver_id"], driver.pk)
                else:
                    with self.assertRaises(IncompletePrerequisites) as ctx:
                        RegistrationService.finalize(principal)
                    self.assertTrue(ctx.exception.missing)
                    if not docs:
                        self.assertIn("profilePhoto", ctx.exception.missing)
                    driver.refresh_from_db()
                    self.assertFalse(driver.verified)

    def test_finalize_notifies_once(self):
        self.basic_info()
        RegistrationService.setup_earn_type(self.principal(), "bicycle", "Montreal")
        for doc in reg.REQUIRED_DOCUMENTS:
            RegistrationService.upload_document(self.principal(), doc, image(), store=self.store)

        with self.captureOnCommitCallbacks(execute=True):
            RegistrationService.finalize(self.principal())
        with self.captureOnCommitCallbacks(execute=True):
            RegistrationService.finalize(self.principal())

        user = self.driver().user
        self.assertEqual(Notification.objects.filter(user=user, type="registration_completed").count(), 1)
        self.assertEqual(Notification.objects.filter(user=user, type="verification_approved").count(), 1)

    def test_finalize_without_driver_lists_everything(self):
        with self.assertRaises(IncompletePrerequisites) as ctx:
            RegistrationService.finalize(self.principal(step=reg.VERIFIED_PHONE))

        self.assertEqual(ctx.exception.missing, [
            "first_name", "last_name", "email", "earn_type", "city", "driversLicense", "profilePhoto",
        ])
        self.assertFalse(Driver.objects.exists())

    # -- status ------------------------------------------------------
    def test_status_before_any_record(self):
        status_ = RegistrationService.get_status(self.principal(step=reg.VERIFIED_PHONE))
        self.assertEqual(status_["registration_step"], reg.VERIFIED_PHONE)
        self.assertEqual(status_["progress"], 20)
        self.assertIn(reg.COMPLETE_BASIC_INFO, status_["allowed_actions"])

    def test_status_tracks_fields(self):
        self.basic_info()
        RegistrationService.upload_document(self.principal(), "driversLicense", image(), store=self.store)

        status_ = RegistrationService.get_status(self.principal())
        self.assertEqual(status_["progress"], 60)
        self.assertEqual(status_["completed_steps"], ["phone", "basic_info", "documents"])
        self.assertEqual(status_["allowed_actions"], [reg.SETUP_EARN_TYPE, reg.UPLOAD_DOCUMENTS])
        self.assertEqual(status_["missing"], ["earn_type", "city", "profilePhoto"])
        self.assertNotIn("reference", status_["documents"]["driversLicense"])


class DriverServiceTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(
            phone="+15550103000", email="lee@example.com", password="s3cret-pass",
            first_name="Lee", last_name="Park",
        )
        self.driver = Driver.objects.create(
            user=self.user, verified=True, registration_step=reg.COMPLETED,
            earn_type="car", city="Toronto", is_available=True,
        )

    def test_login_verified_driver_gets_session(self):
        result = DriverService.login("LEE@example.com", "s3cret-pass")
        self.assertEqual(result["token_type"], "session")
        self.assertEqual(AccessToken(result["token"])["driver_id"], self.driver.pk)

    def test_login_unverified_driver_gets_continuation(self):
        Driver.objects.filter(pk=self.driver.pk).update(verified=False, registration_step=reg.EARN_TYPE_COMPLETED)

        result = DriverService.login("lee@example.com", "s3cret-pass")
        self.assertEqual(result["token_type"], "registration")
        principal = TokenService.decode_registration(result["token"])
        self.assertEqual(principal.step, reg.EARN_TYPE_COMPLETED)

    def test_login_bad_credentials(self):
        with self.assertRaises(InvalidCode):
            DriverService.login("lee@example.com", "wrong")
        with self.assertRaises(InvalidCode):
            DriverService.login("nobody@example.com", "s3cret-pass")

    def test_update_profile(self):
        with self.captureOnCommitCallbacks(execute=True):
            DriverService.update_profile(self.driver, city="Ottawa", first_name="Leigh")

        self.driver.refresh_from_db()
        self.assertEqual(self.driver.city, "Ottawa")
        self.assertEqual(self.driver.user.first_name, "Leigh")
        notification = Notification.objects.get(user=self.user, type="profile_updated")
        self.assertEqual(notification.data["updated_fields"], ["first name", "city"])

    def test_update_profile_email_conflict(self):
        User.objects.create_user(phone="+15550103001", email="taken@example.com")
        with self.assertRaises(Conflict):
            DriverService.update_profile(self.driver, email="taken@example.com")

    def test_cannot_go_offline_with_active_delivery(self):
        Delivery.objects.create(
            sender=User.objects.create_user(phone="+15550103002"),
            driver=self.driver, status="accepted",
            pickup_address="A", pickup_lat=Decimal("43.65"), pickup_lng=Decimal("-79.38"),
            dropoff_address="B", dropoff_lat=Decimal("43.70"), dropoff_lng=Decimal("-79.40"),
        )
        with self.assertRaises(InvalidState):
            DriverService.set_availability(self.driver, False)

    def test_availability_toggle(self):
        with self.captureOnCommitCallbacks(execute=True):
            DriverService.set_availability(self.driver, False)
        self.driver.refresh_from_db()
        self.assertFalse(self.driver.is_available)
        self.assertTrue(Notification.objects.filter(user=self.user, type="general").exists())

    def test_update_location_bounds(self):
        DriverService.update_location(self.driver, "43.6532", "-79.3832")
        self.driver.refresh_from_db()
        self.assertEqual(self.driver.current_lat, Decimal("43.653200"))

        with self.assertRaises(InvalidInput):
            DriverService.update_location(self.driver, 91, 0)
        with self.assertRaises(InvalidInput):
            DriverService.update_location(self.driver, "north", 0)


@patch("apps.drivers.services.get_document_store")
class RegistrationAPITestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.phone = "+15550104000"

    def auth(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_full_registration_flow(self, mock_store):
        mock_store.return_value = FakeStore()

        response = self.client.post("/api/v1/drivers/register/phone/", {"phone": self.phone})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        code = PhoneVerificationCode.objects.get(phone=self.phone).code
        response = self.client.post("/api/v1/drivers/register/verify-otp/", {"phone": self.phone, "code": code})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.auth(response.data["token"])

        response = self.client.post("/api/v1/drivers/register/complete/", {
            "first_name": "Sam", "last_name": "Okafor", "email": "sam@example.com", "password": "s3cret-pass",
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.auth(response.data["token"])

        response = self.client.post("/api/v1/drivers/register/earn-type/", {"earn_type": "car", "city": "Toronto"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.auth(response.data["token"])

        for doc in ("driversLicense", "profilePhoto"):
            response = self.client.post(
                f"/api/v1/drivers/register/upload-document/{doc}/", {"file": image()}, format="multipart"
            )
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        registration_token = response.data["token"]
        self.auth(registration_token)

        response = self.client.get("/api/v1/drivers/register/status/")
        self.assertEqual(response.data["allowed_actions"], [reg.COMPLETE_REGISTRATION])

        response = self.client.post("/api/v1/drivers/register/finalize/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["verified"])

        # Session token opens the delivery endpoints; continuation token does not
        self.auth(response.data["token"])
        self.assertEqual(self.client.get("/api/v1/deliveries/available/").status_code, status.HTTP_200_OK)

        self.auth(registration_token)
        self.assertEqual(self.client.get("/api/v1/deliveries/available/").status_code, status.HTTP_401_UNAUTHORIZED)

    def test_malformed_code_is_invalid_code(self, mock_store):
        self.client.post("/api/v1/drivers/register/phone/", {"phone": self.phone})

        for code in ("é12345", "12ab"):
            response = self.client.post(
                "/api/v1/drivers/register/verify-otp/", {"phone": self.phone, "code": code}, format="json"
            )
            self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
            self.assertEqual(response.data["error"]["code"], "invalid_code")

        self.assertEqual(PhoneVerificationCode.objects.get(phone=self.phone).attempts, 2)

    def test_registration_requires_token(self, mock_store):
        response = self.client.post("/api/v1/drivers/register/finalize/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data["error"]["code"], "invalid_token")

        self.auth("garbage")
        response = self.client.get("/api/v1/drivers/register/status/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_finalize_incomplete_lists_missing(self, mock_store):
        user = User.objects.create_user(phone=self.phone, first_name="A", last_name="B", email="ab@example.com")
        driver = Driver.objects.create(user=user, registration_step=reg.BASIC_INFO_COMPLETED)
        self.auth(TokenService.registration_token_for(driver, reg.BASIC_INFO_COMPLETED))

        response = self.client.post("/api/v1/drivers/register/finalize/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "incomplete_prerequisites")
        self.assertEqual(response.data["error"]["missing"], ["earn_type", "city", "driversLicense", "profilePhoto"])

    def test_invalid_document_type_is_400(self, mock_store):
        mock_store.return_value = FakeStore()
        self.auth(TokenService.registration_token(self.phone, step=reg.VERIFIED_PHONE))

        response = self.client.post(
            "/api/v1/drivers/register/upload-document/passport/", {"file": image()}, format="multipart"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "invalid_input")

    def test_upload_failure_is_502(self, mock_store):
        mock_store.return_value = FakeStore(fail=True)
        self.auth(TokenService.registration_token(self.phone, step=reg.VERIFIED_PHONE))

        response = self.client.post(
            "/api/v1/drivers/register/upload-document/driversLicense/", {"file": image()}, format="multipart"
        )
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data["error"]["code"], "upload_failed")

    def test_login_endpoint(self, mock_store):
        user = User.objects.create_user(phone=self.phone, email="lo@example.com", password="s3cret-pass")
        Driver.objects.create(user=user, verified=True, registration_step=reg.COMPLETED)

        response = self.client.post("/api/v1/drivers/login/", {"email": "lo@example.com", "password": "s3cret-pass"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["token_type"], "session")

        response = self.client.post("/api/v1/drivers/login/", {"email": "lo@example.com", "password": "nope"})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data["error"]["code"], "invalid_credentials")
