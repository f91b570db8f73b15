import logging

from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import (
    AuthenticationFailed,
    NotAuthenticated,
    ValidationError,
)
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Base class for domain-specific errors (e.g., Conflict, NotAvailable).
    These are expected operational errors, not 500s.
    Each subclass fixes its own HTTP status and stable error code.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "invalid_request"

    def __init__(self, message, code=None, **details):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)


class Conflict(BusinessLogicException):
    """Uniqueness or exclusivity violation (duplicate phone/email, second active delivery)."""
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


class InvalidInput(BusinessLogicException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "invalid_input"


class InvalidCode(BusinessLogicException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "invalid_code"


class InvalidToken(BusinessLogicException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "invalid_token"


class InvalidTransition(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_transition"


class NotAvailable(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "not_available"


class InvalidState(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "invalid_state"


class IncompletePrerequisites(BusinessLogicException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "incomplete_prerequisites"

    def __init__(self, missing, message=None, **details):
        self.missing = list(missing)
        super().__init__(
            message or f"Registration incomplete: missing {', '.join(self.missing)}",
            missing=self.missing,
            **details,
        )


class UploadFailed(BusinessLogicException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "upload_failed"


class NotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class RateLimited(BusinessLogicException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "rate_limited"


def _error_body(code, message, error_type, **extra):
    body = {"code": code, "message": message, "type": error_type}
    body.update(extra)
    return {"error": body}


def custom_exception_handler(exc, context):
    """
    Custom DRF Exception Handler.
    Every failure leaves the API as {"error": {"code", "message", "type", ...}}.
    """
    # rest_framework.views loads DEFAULT_AUTHENTICATION_CLASSES, which import this module
    from rest_framework.views import exception_handler

    if isinstance(exc, BusinessLogicException):
        return Response(
            _error_body(exc.code, exc.message, "BusinessLogicError", **exc.details),
            status=exc.status_code,
        )

    if isinstance(exc, IntegrityError):
        # Unique constraints that slipped past a service-level pre-check
        logger.warning(f"Integrity conflict surfaced to API: {exc}")
        return Response(
            _error_body("conflict", "Resource conflicts with existing data", "BusinessLogicError"),
            status=status.HTTP_409_CONFLICT,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        response.data = _error_body(
            "invalid_input", "Request validation failed", "ValidationError", details=response.data
        )
    elif isinstance(exc, (NotAuthenticated, AuthenticationFailed)) or response.status_code == 401:
        response.data = _error_body(
            "invalid_token", _detail_text(response.data), "AuthenticationError"
        )
    elif "error" not in response.data:
        # Http404 from get_object_or_404 carries no DRF code of its own
        code = "not_found" if response.status_code == 404 else getattr(exc, "default_code", "error")
        response.data = _error_body(code, _detail_text(response.data), "APIError")

    return response


def _detail_text(data):
    if isinstance(data, dict) and "detail" in data:
        return str(data["detail"])
    return str(data)
