# apps/utils/resilience.py
import logging
from functools import wraps
from django.core.cache import cache

logger = logging.getLogger(__name__)


class CircuitBreakerOpenException(Exception):
    pass


class CircuitBreaker:
    """
    Decorator that short-circuits calls to a flaky collaborator.

    ``failure_threshold`` failures inside one ``recovery_timeout`` window open
    the circuit for another ``recovery_timeout`` seconds; calls made while it
    is open raise ``CircuitBreakerOpenException`` without touching the
    collaborator. Counters live in the shared cache, so one worker tripping
    the circuit protects every other worker too.
    """

    def __init__(self, service_name, failure_threshold=5, recovery_timeout=60):
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failures_key = f"cb:fails:{service_name}"
        self.open_key = f"cb:open:{service_name}"

    def __call__(self, func):
        @wraps(func)
        def guarded(*args, **kwargs):
            if self.is_open():
                logger.warning(f"Circuit open for {self.service_name}, failing fast")
                raise CircuitBreakerOpenException(f"{self.service_name} is temporarily down")
            try:
                return func(*args, **kwargs)
            except Exception:
                self.record_failure()
                raise

        return guarded

    def is_open(self):
        try:
            return bool(cache.get(self.open_key))
        except Exception as e:
            # No cache means no circuit state; let the call through
            logger.error(f"Circuit state unavailable for {self.service_name}: {e}")
            return False

    def record_failure(self):
        try:
            # add() starts the window; later failures only increment
            cache.add(self.failures_key, 0, timeout=self.recovery_timeout)
            if cache.incr(self.failures_key) < self.failure_threshold:
                return
            cache.set(self.open_key, True, timeout=self.recovery_timeout)
            cache.delete(self.failures_key)
            logger.critical(f"Circuit opened for {self.service_name} for {self.recovery_timeout}s")
        except Exception as e:
            logger.error(f"Could not record failure for {self.service_name}: {e}")
