import logging
import json
import re

MASK = "***MASKED***"


class CorrelationIdFilter(logging.Filter):
    """Guarantees ``record.correlation_id`` so formats can reference it."""

    def filter(self, record):
        from apps.core.middleware import get_correlation_id

        record.correlation_id = get_correlation_id() or "-"
        return True


class GDPRJsonFormatter(logging.Formatter):
    """
    One JSON object per line for the log shipper.

    Secrets are masked twice: structured ``metadata`` by key, then the final
    string by pattern, which catches values interpolated into the message
    (bearer tokens, verification codes, phone numbers).
    """

    SENSITIVE_KEYS = frozenset({
        'password', 'token', 'access', 'registration_token', 'secret',
        'key', 'otp', 'code', 'authorization',
    })

    TEXT_RULES = (
        (re.compile(r'"(password|token|access_token|registration_token)":\s*".*?"'), rf'"\1": "{MASK}"'),
        (re.compile(r'"code":\s*"\d{4,8}"'), f'"code": "{MASK}"'),
        (re.compile(r'Bearer\s+[\w-]+\.[\w-]+\.[\w-]+'), f'Bearer {MASK}'),
        # Keep the country prefix so support can still tell regions apart
        (re.compile(r'"phone":\s*"(\+?\d{2,4})\d{6,}"'), r'"phone": "\1******"'),
    )

    MAX_DEPTH = 10

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line_no": record.lineno,
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        metadata = getattr(record, "metadata", None)
        if isinstance(metadata, dict):
            payload["metadata"] = self._scrub(metadata)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # default=str keeps Decimals and datetimes from breaking the line
        output = json.dumps(payload, default=str)
        for pattern, replacement in self.TEXT_RULES:
            output = pattern.sub(replacement, output)
        return output

    def _scrub(self, data, depth=0):
        if depth > self.MAX_DEPTH:
            return "[MAX_DEPTH_EXCEEDED]"
        if isinstance(data, dict):
            return {
                key: MASK if self._is_secret(key, value) else self._scrub(value, depth + 1)
                for key, value in data.items()
            }
        if isinstance(data, (list, tuple)):
            return [self._scrub(item, depth + 1) for item in data]
        return data

    def _is_secret(self, key, value):
        return str(key).lower() in self.SENSITIVE_KEYS and isinstance(value, (str, int))
