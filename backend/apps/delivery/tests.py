import threading
import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import connection, connections
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from apps.accounts.tokens import TokenService
from apps.drivers.models import Driver
from apps.drivers.tests import FakeStore
from apps.notifications.models import Notification
from apps.utils.exceptions import (
    Conflict,
    InvalidInput,
    InvalidState,
    InvalidTransition,
    NotAvailable,
    NotFound,
    UploadFailed,
)
from .models import ACCEPTED, COMPLETED, IN_TRANSIT, UPCOMING, Delivery
from .services import DeliveryDirectory, DeliveryService
from .tasks import monitor_stuck_deliveries

User = get_user_model()


def make_driver(phone, verified=True):
    user = User.objects.create_user(phone=phone, email=f"{phone[1:]}@example.com", first_name="D", last_name="R")
    return Driver.objects.create(user=user, verified=verified, registration_step="completed" if verified else "verified_phone")


def make_delivery(sender, price="25.00", **kwargs):
    defaults = dict(
        sender=sender,
        pickup_address="1 King St W, Toronto",
        pickup_lat=Decimal("43.648700"),
        pickup_lng=Decimal("-79.378500"),
        dropoff_address="100 Queen St W, Toronto",
        dropoff_lat=Decimal("43.652400"),
        dropoff_lng=Decimal("-79.383200"),
        price=Decimal(price),
    )
    defaults.update(kwargs)
    return Delivery.objects.create(**defaults)


def photo(name="proof.jpg", content_type="image/jpeg"):
    return SimpleUploadedFile(name, b"\xff\xd8\xff fake image", content_type=content_type)


class DeliveryServiceTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.sender = User.objects.create_user(phone="+15550105000")
        self.driver_a = make_driver("+15550105001")
        self.driver_b = make_driver("+15550105002")
        self.delivery = make_delivery(self.sender)

    def test_happy_path(self):
        with self.captureOnCommitCallbacks(execute=True):
            claimed = DeliveryService.claim(self.driver_a, self.delivery.pk)
        self.assertEqual(claimed.status, ACCEPTED)
        self.assertEqual(claimed.driver_id, self.driver_a.pk)
        self.assertIsNotNone(claimed.accepted_at)

        with self.captureOnCommitCallbacks(execute=True):
            started = DeliveryService.start(self.driver_a, self.delivery.pk)
        self.assertEqual(started.status, IN_TRANSIT)
        self.assertIsNotNone(started.started_at)

        with self.captureOnCommitCallbacks(execute=True):
            completed = DeliveryService.complete(self.driver_a, self.delivery.pk)
        self.assertEqual(completed.status, COMPLETED)
        self.assertIsNotNone(completed.completed_at)

        user = self.driver_a.user
        payments = Notification.objects.filter(user=user, type="payment_success")
        self.assertEqual(payments.count(), 1)
        self.assertEqual(Decimal(payments.get().data["amount"]), Decimal("25"))
        for kind in ("delivery_accepted", "delivery_started", "delivery_completed"):
            self.assertTrue(Notification.objects.filter(user=user, type=kind).exists(), kind)

        self.driver_a.refresh_from_db()
        self.assertEqual(self.driver_a.total_deliveries, 1)

    def test_free_delivery_emits_no_payment(self):
        free = make_delivery(self.sender, price="0")
        DeliveryService.claim(self.driver_a, free.pk)
        DeliveryService.start(self.driver_a, free.pk)
        with self.captureOnCommitCallbacks(execute=True):
            DeliveryService.complete(self.driver_a, free.pk)

        self.assertFalse(Notification.objects.filter(type="payment_success").exists())
        self.assertTrue(Notification.objects.filter(type="delivery_completed").exists())

    def test_second_claimant_gets_not_available(self):
        DeliveryService.claim(self.driver_a, self.delivery.pk)

        with self.assertRaises(NotAvailable):
            DeliveryService.claim(self.driver_b, self.delivery.pk)

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.driver_id, self.driver_a.pk)

    def test_unknown_delivery_not_available(self):
        with self.assertRaises(NotAvailable):
            DeliveryService.claim(self.driver_a, 999999)

    def test_only_one_active_delivery(self):
        second = make_delivery(self.sender)
        DeliveryService.claim(self.driver_a, self.delivery.pk)

        with self.assertRaises(Conflict):
            DeliveryService.claim(self.driver_a, second.pk)

        second.refresh_from_db()
        self.assertEqual(second.status, UPCOMING)
        self.assertIsNone(second.driver_id)

    def test_constraint_backs_up_the_precheck(self):
        """A pre-check that loses its race still cannot yield a second active delivery."""
        second = make_delivery(self.sender)
        DeliveryService.claim(self.driver_a, self.delivery.pk)

        with patch.object(DeliveryDirectory, "active_for", return_value=None):
            with self.assertRaises(Conflict):
                DeliveryService.claim(self.driver_a, second.pk)

        active = Delivery.objects.filter(driver=self.driver_a, status__in=(ACCEPTED, IN_TRANSIT))
        self.assertEqual(active.count(), 1)
        self.driver_a.refresh_from_db()
        self.assertEqual(self.driver_a.total_deliveries, 1)

    def test_can_claim_again_after_completion(self):
        second = make_delivery(self.sender)
        DeliveryService.claim(self.driver_a, self.delivery.pk)
        DeliveryService.start(self.driver_a, self.delivery.pk)
        DeliveryService.complete(self.driver_a, self.delivery.pk)

        claimed = DeliveryService.claim(self.driver_a, second.pk)
        self.assertEqual(claimed.status, ACCEPTED)

    def test_start_retry_is_rejected_without_side_effects(self):
        DeliveryService.claim(self.driver_a, self.delivery.pk)
        DeliveryService.start(self.driver_a, self.delivery.pk)
        self.delivery.refresh_from_db()
        before = (self.delivery.status, self.delivery.started_at, self.delivery.updated_at)

        with self.assertRaises(InvalidTransition):
            DeliveryService.start(self.driver_a, self.delivery.pk)

        self.delivery.refresh_from_db()
        self.assertEqual((self.delivery.status, self.delivery.started_at, self.delivery.updated_at), before)

    def test_wrong_owner_cannot_transition(self):
        DeliveryService.claim(self.driver_a, self.delivery.pk)

        with self.assertRaises(InvalidTransition):
            DeliveryService.start(self.driver_b, self.delivery.pk)
        with self.assertRaises(InvalidTransition):
            DeliveryService.complete(self.driver_a, self.delivery.pk)

    def test_transition_on_missing_delivery(self):
        with self.assertRaises(NotFound):
            DeliveryService.start(self.driver_a, 999999)

    def test_cancelled_is_terminal(self):
        cancelled = make_delivery(self.sender, status="cancelled")
        with self.assertRaises(NotAvailable):
            DeliveryService.claim(self.driver_a, cancelled.pk)

    # -- photos ------------------------------------------------------
    def test_photo_windows(self):
        store = FakeStore()
        DeliveryService.claim(self.driver_a, self.delivery.pk)

        with self.assertRaises(InvalidState):
            DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "dropoff", photo(), store=store)
        DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "escrow", photo(), store=store)

        DeliveryService.start(self.driver_a, self.delivery.pk)
        DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "dropoff", photo(), store=store)

        DeliveryService.complete(self.driver_a, self.delivery.pk)
        with self.assertRaises(InvalidState):
            DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "escrow", photo(), store=store)

        self.delivery.refresh_from_db()
        self.assertEqual(set(self.delivery.photos), {"escrow", "dropoff"})

    def test_photo_replacement_discards_old_blob(self):
        store = FakeStore()
        DeliveryService.claim(self.driver_a, self.delivery.pk)
        DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "escrow", photo(), store=store)

        with self.captureOnCommitCallbacks(execute=True):
            DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "escrow", photo(), store=store)

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.photos["escrow"]["reference"], store.uploaded[1])
        self.assertEqual(store.discarded, [store.uploaded[0]])
        self.assertTrue(Notification.objects.filter(type="delivery_photo_uploaded").exists())

    def test_photo_upload_failure_keeps_prior_photo(self):
        store = FakeStore()
        DeliveryService.claim(self.driver_a, self.delivery.pk)
        DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "escrow", photo(), store=store)

        with self.assertRaises(UploadFailed):
            DeliveryService.upload_photo(
                self.driver_a, self.delivery.pk, "escrow", photo(), store=FakeStore(fail=True)
            )

        self.delivery.refresh_from_db()
        self.assertEqual(self.delivery.photos["escrow"]["reference"], store.uploaded[0])

    def test_photo_rules(self):
        store = FakeStore()
        DeliveryService.claim(self.driver_a, self.delivery.pk)

        with self.assertRaises(InvalidInput):
            DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "selfie", photo(), store=store)
        with self.assertRaises(InvalidInput):
            DeliveryService.upload_photo(
                self.driver_a, self.delivery.pk, "escrow", photo("a.pdf", "application/pdf"), store=store
            )
        with self.assertRaises(NotFound):
            DeliveryService.upload_photo(self.driver_b, self.delivery.pk, "escrow", photo(), store=store)
        self.assertEqual(store.uploaded, [])

    def test_get_and_delete_photo(self):
        store = FakeStore()
        DeliveryService.claim(self.driver_a, self.delivery.pk)
        DeliveryService.upload_photo(self.driver_a, self.delivery.pk, "escrow", photo(), store=store)

        photos = DeliveryService.get_photos(self.driver_a, self.delivery.pk)
        self.assertIsNone(photos["dropoff"])
        self.assertEqual(photos["escrow"]["reference"], store.uploaded[0])

        with self.captureOnCommitCallbacks(execute=True):
            DeliveryService.delete_photo(self.driver_a, self.delivery.pk, "escrow", store=store)
        self.assertEqual(store.discarded, [store.uploaded[0]])

        with self.assertRaises(NotFound):
            DeliveryService.delete_photo(self.driver_a, self.delivery.pk, "escrow", store=store)


class DeliveryDirectoryTestCase(TestCase):
    def setUp(self):
        self.sender = User.objects.create_user(phone="+15550106000")
        self.driver = make_driver("+15550106001")

    def test_list_available_newest_first(self):
        now = timezone.now()
        older = make_delivery(self.sender, created_at=now - timedelta(hours=1))
        newer = make_delivery(self.sender, created_at=now)
        taken = make_delivery(self.sender)
        DeliveryService.claim(self.driver, taken.pk)
        make_delivery(self.sender, status="pending")

        self.assertEqual(list(DeliveryDirectory.list_available()), [newer, older])

    def test_active_for(self):
        self.assertIsNone(DeliveryDirectory.active_for(self.driver))
        delivery = make_delivery(self.sender)
        DeliveryService.claim(self.driver, delivery.pk)
        self.assertEqual(DeliveryDirectory.active_for(self.driver), delivery)

    def test_history_pagination(self):
        now = timezone.now()
        ids = []
        for i in range(5):
            d = make_delivery(self.sender, driver=self.driver, status=COMPLETED, created_at=now - timedelta(minutes=i))
            ids.append(d.pk)
        make_delivery(self.sender)  # never claimed

        page1 = DeliveryDirectory.history(self.driver, page=1, limit=2)
        self.assertEqual([d.pk for d in page1["results"]], ids[:2])
        self.assertEqual(page1["total_pages"], 3)
        self.assertEqual(page1["total_deliveries"], 5)

        page3 = DeliveryDirectory.history(self.driver, page=3, limit=2)
        self.assertEqual([d.pk for d in page3["results"]], ids[4:])

        beyond = DeliveryDirectory.history(self.driver, page=9, limit=2)
        self.assertEqual(beyond["results"], [])

    def test_history_rejects_bad_paging(self):
        with self.assertRaises(InvalidInput):
            DeliveryDirectory.history(self.driver, page=0)
        with self.assertRaises(InvalidInput):
            DeliveryDirectory.history(self.driver, page="x")


class StuckDeliveryMonitorTestCase(TestCase):
    def setUp(self):
        self.sender = User.objects.create_user(phone="+15550107000")
        self.driver = make_driver("+15550107001")

    def test_reports_without_changing_status(self):
        stuck = make_delivery(self.sender)
        DeliveryService.claim(self.driver, stuck.pk)
        Delivery.objects.filter(pk=stuck.pk).update(updated_at=timezone.now() - timedelta(hours=5))

        with self.captureOnCommitCallbacks(execute=True):
            result = monitor_stuck_deliveries()

        self.assertIn("Accepted=1", result)
        stuck.refresh_from_db()
        self.assertEqual(stuck.status, ACCEPTED)
        self.assertTrue(Notification.objects.filter(user=self.driver.user, type="general").exists())

    def test_nominal(self):
        self.assertEqual(monitor_stuck_deliveries(), "All systems nominal")


class DeliveryAPITestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.sender = User.objects.create_user(phone="+15550108000")
        self.driver = make_driver("+15550108001")
        self.delivery = make_delivery(self.sender)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {TokenService.session_token(self.driver)}")

    def test_lifecycle_over_http(self):
        response = self.client.get("/api/v1/deliveries/available/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"][0]["id"], self.delivery.pk)

        response = self.client.post(f"/api/v1/deliveries/{self.delivery.pk}/accept/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], ACCEPTED)

        response = self.client.get("/api/v1/deliveries/active/")
        self.assertEqual(response.data["delivery"]["id"], self.delivery.pk)

        response = self.client.post(f"/api/v1/deliveries/{self.delivery.pk}/start/")
        self.assertEqual(response.data["status"], IN_TRANSIT)

        response = self.client.post(f"/api/v1/deliveries/{self.delivery.pk}/start/")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "invalid_transition")

        response = self.client.post(f"/api/v1/deliveries/{self.delivery.pk}/complete/")
        self.assertEqual(response.data["status"], COMPLETED)

        response = self.client.get("/api/v1/deliveries/active/")
        self.assertIsNone(response.data["delivery"])

        response = self.client.get("/api/v1/deliveries/history/", {"page": 1, "limit": 5})
        self.assertEqual(response.data["total_deliveries"], 1)
        self.assertEqual(response.data["results"][0]["status"], COMPLETED)

    def test_claimed_delivery_is_409_not_available(self):
        other = make_driver("+15550108002")
        DeliveryService.claim(other, self.delivery.pk)

        response = self.client.post(f"/api/v1/deliveries/{self.delivery.pk}/accept/")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "not_available")

    def test_photo_upload_over_http(self):
        DeliveryService.claim(self.driver, self.delivery.pk)

        with patch("apps.delivery.services.get_document_store", return_value=FakeStore()):
            response = self.client.post(
                f"/api/v1/deliveries/{self.delivery.pk}/photos/escrow/", {"photo": photo()}, format="multipart"
            )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn("url", response.data["photos"]["escrow"])
        self.assertNotIn("reference", response.data["photos"]["escrow"])

    def test_unverified_driver_forbidden(self):
        pending = make_driver("+15550108003", verified=False)
        self.client.force_authenticate(user=pending.user)
        response = self.client.get("/api/v1/deliveries/available/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_history_bad_limit(self):
        response = self.client.get("/api/v1/deliveries/history/", {"limit": 0})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "invalid_input")


@unittest.skipUnless(connection.vendor == "postgresql", "row-level concurrency needs PostgreSQL")
class ClaimRaceTestCase(TransactionTestCase):
    """Real concurrent claims, one thread and connection per driver."""

    def race(self, calls):
        barrier = threading.Barrier(len(calls))
        outcomes = []

        def run(driver, delivery_id):
            try:
                barrier.wait()
                DeliveryService.claim(driver, delivery_id)
                outcomes.append("ok")
            except (Conflict, NotAvailable) as e:
                outcomes.append(type(e).__name__)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=run, args=call) for call in calls]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return outcomes

    def test_many_drivers_one_delivery(self):
        sender = User.objects.create_user(phone="+15550109000")
        delivery = make_delivery(sender)
        drivers = [make_driver(f"+155501090{i:02d}") for i in range(1, 7)]

        outcomes = self.race([(d, delivery.pk) for d in drivers])

        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(outcomes.count("NotAvailable"), len(drivers) - 1)

    def test_one_driver_many_deliveries(self):
        sender = User.objects.create_user(phone="+15550109100")
        driver = make_driver("+15550109101")
        deliveries = [make_delivery(sender) for _ in range(6)]

        outcomes = self.race([(driver, d.pk) for d in deliveries])

        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(outcomes.count("Conflict"), len(deliveries) - 1)
        self.assertEqual(Delivery.objects.filter(driver=driver, status=ACCEPTED).count(), 1)
