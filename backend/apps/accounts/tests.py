# apps/accounts/tests.py
from datetime import timedelta

from django.test import TestCase
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient
from rest_framework import status

from apps.accounts.models import UserRole
from apps.accounts.services import AccountService
from apps.accounts.tokens import RegistrationToken, TokenService
from apps.drivers.models import Driver
from apps.utils.exceptions import InvalidInput, InvalidToken

User = get_user_model()


class AccountServiceTestCase(TestCase):
    def test_create_user_manager(self):
        user = User.objects.create_user(phone="+15550100001", password="password123")
        self.assertEqual(user.phone, "+15550100001")
        self.assertTrue(user.check_password("password123"))
        self.assertFalse(user.is_staff)
        self.assertFalse(user.is_superuser)

    def test_user_without_password_cannot_log_in(self):
        user = User.objects.create_user(phone="+15550100002")
        self.assertFalse(user.has_usable_password())

    def test_create_superuser(self):
        admin = User.objects.create_superuser(phone="+15550100003", password="adminpass")
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_superuser)

    def test_phone_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(phone=None, password="pass")

    def test_normalize_phone(self):
        self.assertEqual(AccountService.normalize_phone("+1 (555) 010-2000"), "+15550102000")
        for bad in ("", "abc", "+0123", "12"):
            with self.assertRaises(InvalidInput):
                AccountService.normalize_phone(bad)

    def test_create_driver_is_idempotent(self):
        first = AccountService.create_driver("+15550100004")
        second = AccountService.create_driver("+1 555 010 0004")

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(UserRole.objects.filter(user=first, role="driver").count(), 1)

    def test_email_taken_ignores_case_and_self(self):
        user = User.objects.create_user(phone="+15550100005", email="ana@example.com")
        self.assertTrue(AccountService.email_taken("ANA@example.com"))
        self.assertFalse(AccountService.email_taken("ana@example.com", exclude_user=user))


class TokenServiceTestCase(TestCase):
    def setUp(self):
        user = User.objects.create_user(phone="+15550100010", email="tok@example.com")
        self.driver = Driver.objects.create(user=user, registration_step="earn_type_completed")

    def test_registration_token_round_trip(self):
        raw = TokenService.registration_token_for(self.driver, "earn_type_completed")
        principal = TokenService.decode_registration(raw)

        self.assertEqual(principal.driver_id, self.driver.pk)
        self.assertEqual(principal.phone, "+15550100010")
        self.assertEqual(principal.step, "earn_type_completed")

    def test_session_token_is_not_a_registration_token(self):
        with self.assertRaises(InvalidToken):
            TokenService.decode_registration(TokenService.session_token(self.driver))

    def test_expired_registration_token_rejected(self):
        token = RegistrationToken()
        token["phone"] = "+15550100010"
        token.set_exp(lifetime=-timedelta(seconds=1))

        with self.assertRaises(InvalidToken):
            TokenService.decode_registration(str(token))

    def test_garbage_rejected(self):
        with self.assertRaises(InvalidToken):
            TokenService.decode_registration("not-a-token")


class AuthAPITestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(phone="+15550100020", password="testpass")
        UserRole.objects.create(user=self.user, role="driver")
        self.driver = Driver.objects.create(user=self.user, verified=True, registration_step="completed")

    def test_me_endpoint_authenticated(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["phone"], self.user.phone)
        self.assertEqual(response.data["roles"], ["driver"])

    def test_me_endpoint_unauthenticated(self):
        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data["error"]["code"], "invalid_token")

    def test_session_token_authenticates(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {TokenService.session_token(self.driver)}")
        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_registration_token_cannot_reach_session_endpoints(self):
        raw = TokenService.registration_token_for(self.driver, "completed")
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {raw}")
        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_revokes_token(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {TokenService.session_token(self.driver)}")
        response = self.client.post("/api/v1/auth/logout/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get("/api/v1/auth/me/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
