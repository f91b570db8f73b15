import uuid
import logging
from contextvars import ContextVar
from django.http import JsonResponse
from django.core.cache import cache

logger = logging.getLogger(__name__)

# Shared with Celery signal handlers and the log filter
_correlation_id = ContextVar("correlation_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"
KILL_SWITCH_KEY = "config:kill_switch:active"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
KILL_SWITCH_EXEMPT_PREFIXES = ("/admin/", "/health/")


def get_correlation_id():
    return _correlation_id.get()


class CorrelationIDMiddleware:
    """Tags each request with an id, echoed back in ``X-Request-ID``."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.correlation_id = request_id
        token = _correlation_id.set(request_id)
        try:
            response = self.get_response(request)
        finally:
            _correlation_id.reset(token)
        response[REQUEST_ID_HEADER] = request_id
        return response


class GlobalKillSwitchMiddleware:
    """
    Operations can freeze the platform by setting ``KILL_SWITCH_KEY`` in the
    cache. While set, drivers can still read but every write gets 503, so
    no claim or completion lands mid-incident. Admin stays writable to lift it.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.method not in SAFE_METHODS and not request.path.startswith(KILL_SWITCH_EXEMPT_PREFIXES):
            if self._engaged():
                return JsonResponse(
                    {"error": {
                        "code": "maintenance_mode",
                        "message": "System under maintenance.",
                        "type": "ServiceUnavailable",
                    }},
                    status=503,
                )
        return self.get_response(request)

    @staticmethod
    def _engaged():
        try:
            return bool(cache.get(KILL_SWITCH_KEY))
        except Exception:
            # Unknown state blocks writes
            logger.exception("Kill switch lookup failed, rejecting write")
            return True
