import json
import logging
import os
import subprocess
import sys
from unittest.mock import MagicMock

from django.core.cache import cache
from django.core.files.storage import InMemoryStorage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.http import JsonResponse
from django.conf import settings
from django.test import SimpleTestCase, TestCase, RequestFactory, override_settings

from apps.core.middleware import CorrelationIDMiddleware, GlobalKillSwitchMiddleware
from apps.core.storage import DocumentStore, validate_upload
from apps.utils.exceptions import Conflict, InvalidInput, UploadFailed, custom_exception_handler
from apps.utils.logging import GDPRJsonFormatter


class MiddlewareTestCase(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.get_response = lambda req: JsonResponse({"status": "ok"})
        cache.clear()

    def test_correlation_id_generation(self):
        middleware = CorrelationIDMiddleware(self.get_response)
        request = self.factory.get("/")
        response = middleware(request)

        self.assertTrue(response.has_header("X-Request-ID"))
        self.assertEqual(response["X-Request-ID"], request.correlation_id)

    def test_correlation_id_is_propagated(self):
        middleware = CorrelationIDMiddleware(self.get_response)
        request = self.factory.get("/", HTTP_X_REQUEST_ID="trace-123")
        response = middleware(request)
        self.assertEqual(response["X-Request-ID"], "trace-123")

    def test_kill_switch_active(self):
        cache.set("config:kill_switch:active", True)
        middleware = GlobalKillSwitchMiddleware(self.get_response)

        response = middleware(self.factory.post("/api/v1/deliveries/1/accept/"))
        self.assertEqual(response.status_code, 503)
        self.assertEqual(json.loads(response.content)["error"]["code"], "maintenance_mode")

        # Reads stay available
        response_get = middleware(self.factory.get("/api/v1/deliveries/available/"))
        self.assertEqual(response_get.status_code, 200)

    def test_kill_switch_spares_admin(self):
        cache.set("config:kill_switch:active", True)
        middleware = GlobalKillSwitchMiddleware(self.get_response)
        response = middleware(self.factory.post("/admin/login/"))
        self.assertEqual(response.status_code, 200)

    def test_kill_switch_inactive(self):
        middleware = GlobalKillSwitchMiddleware(self.get_response)
        response = middleware(self.factory.post("/"))
        self.assertEqual(response.status_code, 200)


class HealthCheckTestCase(TestCase):
    def setUp(self):
        cache.clear()

    def test_health_check_ok(self):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["services"]["db"], "ok")
        self.assertEqual(body["services"]["cache"], "ok")
        self.assertEqual(body["services"]["beat"], "warming_up")


def make_upload(name="licence.jpg", content=b"\xff\xd8\xff fake jpeg", content_type="image/jpeg"):
    return SimpleUploadedFile(name, content, content_type=content_type)


class DocumentStoreTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.storage = InMemoryStorage()
        self.store = DocumentStore(storage=self.storage)

    def test_upload_returns_reference_under_folder(self):
        blob = self.store.upload(make_upload(), folder="drivers/7/driversLicense")

        self.assertTrue(blob.reference.startswith("drivers/7/driversLicense/"))
        self.assertTrue(blob.reference.endswith(".jpg"))
        self.assertTrue(self.storage.exists(blob.reference))

    def test_upload_names_are_unique(self):
        first = self.store.upload(make_upload(), folder="x")
        second = self.store.upload(make_upload(), folder="x")
        self.assertNotEqual(first.reference, second.reference)

    def test_backend_failure_becomes_upload_failed(self):
        broken = MagicMock()
        broken.save.side_effect = OSError("bucket unreachable")
        store = DocumentStore(storage=broken)

        with self.assertRaises(UploadFailed):
            store.upload(make_upload(), folder="x")

    def test_open_circuit_fails_fast(self):
        broken = MagicMock()
        broken.save.side_effect = OSError("bucket unreachable")
        store = DocumentStore(storage=broken)

        for _ in range(5):
            with self.assertRaises(UploadFailed):
                store.upload(make_upload(), folder="x")
        broken.save.reset_mock()

        with self.assertRaises(UploadFailed):
            store.upload(make_upload(), folder="x")
        broken.save.assert_not_called()

    def test_discard_swallows_backend_errors(self):
        broken = MagicMock()
        broken.delete.side_effect = OSError("gone")
        store = DocumentStore(storage=broken)

        self.assertFalse(store.discard("drivers/1/a.jpg"))
        self.assertFalse(store.discard(None))

    def test_discard_deletes(self):
        blob = self.store.upload(make_upload(), folder="x")
        self.assertTrue(self.store.discard(blob.reference))
        self.assertFalse(self.storage.exists(blob.reference))


class ValidateUploadTestCase(TestCase):
    def test_accepts_images_and_pdf(self):
        validate_upload(make_upload())
        validate_upload(make_upload("doc.pdf", b"%PDF-1.4", "application/pdf"))

    def test_pdf_rejected_where_only_images_allowed(self):
        with self.assertRaises(InvalidInput):
            validate_upload(make_upload("doc.pdf", b"%PDF-1.4", "application/pdf"), allow_pdf=False)

    def test_rejects_other_types(self):
        with self.assertRaises(InvalidInput):
            validate_upload(make_upload("run.sh", b"#!/bin/sh", "text/x-shellscript"))

    def test_rejects_empty(self):
        with self.assertRaises(InvalidInput):
            validate_upload(make_upload(content=b""))

    @override_settings(DOCUMENT_MAX_UPLOAD_BYTES=4)
    def test_rejects_oversized(self):
        with self.assertRaises(InvalidInput):
            validate_upload(make_upload(content=b"12345"))


class ExceptionHandlerTestCase(TestCase):
    def test_business_error_shape(self):
        response = custom_exception_handler(Conflict("Email already registered"), {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"]["code"], "conflict")
        self.assertEqual(response.data["error"]["message"], "Email already registered")

    def test_details_are_merged(self):
        response = custom_exception_handler(InvalidInput("bad", field="email"), {})
        self.assertEqual(response.data["error"]["field"], "email")


class LoggingTestCase(TestCase):
    def test_json_formatter_masks_secrets(self):
        record = logging.LogRecord("apps", logging.INFO, __file__, 1, "login attempt", None, None)
        record.metadata = {"password": "hunter22", "code": "123456", "nested": [{"token": "abc"}]}
        output = json.loads(GDPRJsonFormatter().format(record))

        self.assertEqual(output["metadata"]["password"], "***MASKED***")
        self.assertEqual(output["metadata"]["code"], "***MASKED***")
        self.assertEqual(output["metadata"]["nested"][0]["token"], "***MASKED***")


class ImportOrderTestCase(SimpleTestCase):
    def test_exceptions_importable_before_drf_views(self):
        # A cold interpreter whose first project import is the error taxonomy;
        # importing pytest puts settings in test mode
        env = dict(os.environ, DJANGO_SETTINGS_MODULE="config.settings")
        result = subprocess.run(
            [sys.executable, "-c", "import pytest, django; django.setup(); "
             "import apps.utils.exceptions, rest_framework.views, apps.accounts.authentication"],
            cwd=settings.BASE_DIR, env=env, capture_output=True, text=True, timeout=60,
        )
        self.assertEqual(result.returncode, 0, result.stderr)
