# apps/core/storage.py
import logging
import os
import secrets
from typing import NamedTuple

from django.conf import settings
from django.core.files.storage import storages
from django.utils import timezone

from apps.utils.exceptions import InvalidInput, UploadFailed
from apps.utils.resilience import CircuitBreaker, CircuitBreakerOpenException

logger = logging.getLogger(__name__)


class StoredBlob(NamedTuple):
    reference: str
    url: str


class DocumentStore:
    """
    Thin adapter over the configured "documents" storage backend
    (S3 in production, in-memory in tests).

    The store is an opaque blob bucket: upload() returns a stable reference
    plus a URL, delete() removes by reference. Callers never see backend
    exceptions; a failed upload surfaces as UploadFailed.
    """

    def __init__(self, storage=None):
        self.storage = storage if storage is not None else storages["documents"]

    def upload(self, upload, folder: str) -> StoredBlob:
        _, ext = os.path.splitext(getattr(upload, "name", "") or "")
        name = f"{folder.strip('/')}/{secrets.token_hex(8)}{ext.lower()}"

        try:
            reference = self._save(name, upload)
            url = self.storage.url(reference)
        except CircuitBreakerOpenException as e:
            raise UploadFailed("Document storage is temporarily unavailable") from e
        except Exception as e:
            logger.error(f"Blob upload failed for {name}: {e}")
            raise UploadFailed("Could not store the uploaded file") from e

        logger.info(f"Stored blob {reference}")
        return StoredBlob(reference=reference, url=url)

    def delete(self, reference: str):
        self.storage.delete(reference)

    def discard(self, reference):
        """
        Best-effort delete. Used for replaced or orphaned blobs where the
        caller's outcome must not depend on the store.
        """
        if not reference:
            return False
        try:
            self.delete(reference)
            return True
        except Exception:
            logger.warning(f"Could not delete blob {reference}; left for cleanup", exc_info=True)
            return False

    @CircuitBreaker("document_store", failure_threshold=5, recovery_timeout=60)
    def _save(self, name, upload):
        if hasattr(upload, "seek"):
            upload.seek(0)
        return self.storage.save(name, upload)


def get_document_store():
    return DocumentStore()


def validate_upload(upload, allow_pdf=True):
    """Reject empty, oversized or wrongly typed uploads before touching the store."""
    if upload is None:
        raise InvalidInput("A file is required")
    size = getattr(upload, "size", 0) or 0
    if size <= 0:
        raise InvalidInput("Uploaded file is empty")
    if size > settings.DOCUMENT_MAX_UPLOAD_BYTES:
        raise InvalidInput(
            f"File too large (max {settings.DOCUMENT_MAX_UPLOAD_BYTES // (1024 * 1024)} MB)"
        )
    content_type = (getattr(upload, "content_type", "") or "").lower()
    if content_type.startswith("image/"):
        return
    if allow_pdf and content_type == "application/pdf":
        return
    raise InvalidInput("Only image and PDF files are allowed" if allow_pdf else "Only image files are allowed")


def blob_record(blob, upload):
    """Embedded sub-record stored on the owning row for an uploaded blob."""
    return {
        "reference": blob.reference,
        "url": blob.url,
        "original_name": getattr(upload, "name", ""),
        "content_type": getattr(upload, "content_type", ""),
        "size": getattr(upload, "size", 0),
        "uploaded_at": timezone.now().isoformat(),
    }
