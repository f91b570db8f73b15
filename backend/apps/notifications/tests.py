from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.core.cache import cache
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework import status

from apps.notifications.models import Notification, PhoneVerificationCode
from apps.notifications.services import NotificationService, OTPService
from apps.notifications.tasks import purge_expired_codes, purge_expired_notifications
from apps.utils.exceptions import InvalidCode, RateLimited

User = get_user_model()


class OTPServiceTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.phone = "+15550101000"

    def test_issue_creates_code_and_queues_sms(self):
        with patch("apps.notifications.services.send_otp_sms.delay") as mock_sms:
            with self.captureOnCommitCallbacks(execute=True):
                record = OTPService.issue(self.phone)

        self.assertEqual(len(record.code), 6)
        self.assertTrue(PhoneVerificationCode.objects.filter(phone=self.phone).exists())
        mock_sms.assert_called_once()
        self.assertIn(record.code, mock_sms.call_args[0][1])

    def test_new_code_replaces_old(self):
        first = OTPService.issue(self.phone)
        second = OTPService.issue(self.phone)

        codes = PhoneVerificationCode.objects.filter(phone=self.phone)
        self.assertEqual(codes.count(), 1)
        self.assertEqual(codes.get().pk, second.pk)
        self.assertNotEqual(first.pk, second.pk)

    def test_verify_success_consumes_code(self):
        record = OTPService.issue(self.phone)

        self.assertTrue(OTPService.verify(self.phone, record.code))
        self.assertFalse(PhoneVerificationCode.objects.filter(phone=self.phone).exists())

        # Replay
        with self.assertRaises(InvalidCode):
            OTPService.verify(self.phone, record.code)

    def test_wrong_code_counts_attempt(self):
        record = OTPService.issue(self.phone)
        wrong = "000000" if record.code != "000000" else "111111"

        with self.assertRaises(InvalidCode):
            OTPService.verify(self.phone, wrong)

        record.refresh_from_db()
        self.assertEqual(record.attempts, 1)

    def test_non_ascii_code_is_a_mismatch(self):
        record = OTPService.issue(self.phone)

        with self.assertRaises(InvalidCode):
            OTPService.verify(self.phone, "\u00e9" + record.code[1:])

        record.refresh_from_db()
        self.assertEqual(record.attempts, 1)

    @override_settings(OTP_MAX_ATTEMPTS=2)
    def test_code_locks_after_max_attempts(self):
        record = OTPService.issue(self.phone)
        wrong = "000000" if record.code != "000000" else "111111"

        for _ in range(2):
            with self.assertRaises(InvalidCode):
                OTPService.verify(self.phone, wrong)

        with self.assertRaises(InvalidCode) as ctx:
            OTPService.verify(self.phone, record.code)
        self.assertEqual(ctx.exception.code, "otp_limit")

    def test_expired_code_rejected(self):
        record = OTPService.issue(self.phone)
        PhoneVerificationCode.objects.filter(pk=record.pk).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )

        with self.assertRaises(InvalidCode):
            OTPService.verify(self.phone, record.code)

    @override_settings(OTP_MAX_REQUESTS_PER_HOUR=3)
    def test_rate_limit(self):
        for _ in range(3):
            OTPService.issue(self.phone)

        with self.assertRaises(RateLimited):
            OTPService.issue(self.phone)

    def test_purge_expired_codes(self):
        record = OTPService.issue(self.phone)
        PhoneVerificationCode.objects.filter(pk=record.pk).update(
            expires_at=timezone.now() - timedelta(minutes=1)
        )

        self.assertEqual(purge_expired_codes(), 1)
        self.assertFalse(PhoneVerificationCode.objects.exists())


class NotificationServiceTestCase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(phone="+15550101100")

    def test_emit_persists_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            NotificationService.profile_updated(self.user, ["email"])
            # Nothing is written until the surrounding transaction commits
            self.assertFalse(Notification.objects.exists())

        self.assertEqual(len(callbacks), 1)
        notification = Notification.objects.get()
        self.assertEqual(notification.type, "profile_updated")
        self.assertEqual(notification.data, {"updated_fields": ["email"]})

    def test_payment_success_amount(self):
        with self.captureOnCommitCallbacks(execute=True):
            NotificationService.payment_success(self.user, Decimal("25.00"), "delivery completion")

        notification = Notification.objects.get(type="payment_success")
        self.assertEqual(Decimal(notification.data["amount"]), Decimal("25"))
        self.assertEqual(notification.priority, "high")

    def test_dispatch_failure_is_swallowed(self):
        with patch(
            "apps.notifications.services.dispatch_notification.delay",
            side_effect=ConnectionError("broker down"),
        ):
            with self.captureOnCommitCallbacks(execute=True):
                NotificationService.profile_updated(self.user)

        self.assertFalse(Notification.objects.exists())

    def test_unknown_type_is_dropped(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            NotificationService.emit(self.user, "bogus", "t", "m")
        self.assertEqual(callbacks, [])

    def test_purge_expired_notifications(self):
        Notification.objects.create(
            user=self.user, type="general", title="old", message="m",
            expires_at=timezone.now() - timedelta(days=1),
        )
        Notification.objects.create(user=self.user, type="general", title="keep", message="m")

        self.assertEqual(purge_expired_notifications(), 1)
        self.assertEqual(Notification.objects.get().title, "keep")


class NotificationAPITestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(phone="+15550101200")
        self.other = User.objects.create_user(phone="+15550101201")
        self.client.force_authenticate(user=self.user)

        self.first = Notification.objects.create(
            user=self.user, type="delivery_accepted", title="A", message="m", priority="high",
            created_at=timezone.now() - timedelta(minutes=5),
        )
        self.second = Notification.objects.create(user=self.user, type="general", title="B", message="m")
        self.expired = Notification.objects.create(
            user=self.user, type="general", title="C", message="m",
            expires_at=timezone.now() - timedelta(minutes=1),
        )
        self.foreign = Notification.objects.create(user=self.other, type="general", title="D", message="m")

    def test_list_newest_first_without_expired(self):
        response = self.client.get("/api/v1/notifications/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [n["id"] for n in response.data["results"]]
        self.assertEqual(ids, [self.second.pk, self.first.pk])

    def test_filter_by_type(self):
        response = self.client.get("/api/v1/notifications/", {"type": "delivery_accepted"})
        self.assertEqual([n["id"] for n in response.data["results"]], [self.first.pk])

    def test_unread_count(self):
        response = self.client.get("/api/v1/notifications/unread-count/")
        self.assertEqual(response.data["unread_count"], 2)

    def test_mark_one_read(self):
        response = self.client.post(f"/api/v1/notifications/{self.first.pk}/read/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.first.refresh_from_db()
        self.assertTrue(self.first.is_read)
        self.assertIsNotNone(self.first.read_at)

    def test_mark_many_read(self):
        response = self.client.post(
            "/api/v1/notifications/read/", {"ids": [self.first.pk, self.foreign.pk]}, format="json"
        )
        self.assertEqual(response.data["updated"], 1)
        self.foreign.refresh_from_db()
        self.assertFalse(self.foreign.is_read)

    def test_mark_all_read(self):
        response = self.client.post("/api/v1/notifications/read-all/")
        self.assertEqual(response.data["updated"], 2)

    def test_foreign_notification_not_found(self):
        response = self.client.get(f"/api/v1/notifications/{self.foreign.pk}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"]["code"], "not_found")

        response = self.client.delete(f"/api/v1/notifications/{self.foreign.pk}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Notification.objects.filter(pk=self.foreign.pk).exists())

    def test_delete_own(self):
        response = self.client.delete(f"/api/v1/notifications/{self.second.pk}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Notification.objects.filter(pk=self.second.pk).exists())

    def test_requires_auth(self):
        self.client.force_authenticate(user=None)
        response = self.client.get("/api/v1/notifications/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
