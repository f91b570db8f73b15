# config/settings.py
# Errand driver backend settings. Everything is driven by environment
# variables; production refuses to boot when a required one is missing.
import os
import sys
import logging
from datetime import timedelta
from pathlib import Path
import dj_database_url

import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.celery import CeleryIntegration
from corsheaders.defaults import default_headers

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
DJANGO_ENV = os.getenv("DJANGO_ENV", "production")

# pytest or `manage.py test`
TESTING = "pytest" in sys.modules or sys.argv[1:2] == ["test"]
DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
# Dev and test runs share the same forgiving defaults
RELAXED = DEBUG or TESTING


def _required(name, dev_default=None):
    """Read an env var, exiting when it is absent outside dev/test."""
    value = os.getenv(name)
    if value:
        return value
    if RELAXED:
        if dev_default is not None:
            logger.warning(f"⚠️  {name} not set, falling back to a development value")
        return dev_default
    logger.critical(f"❌ {name} is required when DJANGO_ENV={DJANGO_ENV}")
    sys.exit(1)


def _csv(value):
    return [item.strip() for item in (value or "").split(",") if item.strip()]


logger.info(f"🚚 Errand backend booting (env={DJANGO_ENV}, debug={DEBUG}, testing={TESTING})")

# ==============================================================================
# RUNTIME & SECRETS
# ==============================================================================
SECRET_KEY = _required("DJANGO_SECRET_KEY", dev_default="errand-dev-only-secret")
ALLOWED_HOSTS = _csv(_required("ALLOWED_HOSTS", dev_default="localhost,127.0.0.1,testserver"))

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"
LANGUAGE_CODE = "en-us"

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# ==============================================================================
# APPLICATIONS & MIDDLEWARE
# ==============================================================================
DJANGO_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]
THIRD_PARTY_APPS = [
    "rest_framework",
    "django_filters",
    "corsheaders",
    "drf_spectacular",
    "django_prometheus",
    "storages",
    "import_export",
]
ERRAND_APPS = [
    "apps.core",
    "apps.accounts",
    "apps.notifications",
    "apps.drivers",
    "apps.delivery",
]
INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + ERRAND_APPS

MIDDLEWARE = [
    "django_prometheus.middleware.PrometheusBeforeMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    # Request id must exist before the kill switch renders an error
    "apps.core.middleware.CorrelationIDMiddleware",
    "apps.core.middleware.GlobalKillSwitchMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django_prometheus.middleware.PrometheusAfterMiddleware",
]
if not RELAXED:
    MIDDLEWARE.insert(2, "whitenoise.middleware.WhiteNoiseMiddleware")

# Admin only; the API itself renders JSON
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

# ==============================================================================
# DATABASE
# DATABASE_URL wins; otherwise assembled from POSTGRES_*; SQLite in dev/test
# ==============================================================================
def _database_url():
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    parts = {key: os.getenv(f"POSTGRES_{key}") for key in ("USER", "PASSWORD", "DB")}
    if all(parts.values()):
        host = os.getenv("POSTGRES_HOST", "localhost")
        port = os.getenv("POSTGRES_PORT", "5432")
        return f"postgres://{parts['USER']}:{parts['PASSWORD']}@{host}:{port}/{parts['DB']}"
    if RELAXED:
        logger.warning("⚠️  No Postgres configured, using local SQLite")
        return f"sqlite:///{BASE_DIR / 'errand_dev.sqlite3'}"
    logger.critical("❌ DATABASE_URL (or POSTGRES_USER/PASSWORD/DB) is required")
    sys.exit(1)


DATABASES = {
    "default": dj_database_url.config(
        default=_database_url(),
        conn_max_age=0 if TESTING else 600,
    )
}
logger.info(f"Database engine: {DATABASES['default'].get('ENGINE')}")

# ==============================================================================
# CACHE & TASK QUEUE
# OTP rate limits, the kill switch and the beat heartbeat live in the cache
# ==============================================================================
REDIS_URL = os.getenv("REDIS_URL") or ("redis://localhost:6379/0" if DEBUG else None)
if not REDIS_URL and not RELAXED:
    logger.critical("❌ REDIS_URL is required for the cache and Celery broker")
    sys.exit(1)

CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

if REDIS_URL and not TESTING:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": REDIS_URL,
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
                "SOCKET_CONNECT_TIMEOUT": 5,
                "SOCKET_TIMEOUT": 5,
                "RETRY_ON_TIMEOUT": True,
            },
        }
    }
    CELERY_BROKER_URL = REDIS_URL
    CELERY_RESULT_BACKEND = REDIS_URL
    CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True
else:
    logger.warning("⚠️  Redis disabled: local-memory cache, Celery tasks run inline")
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "errand-local",
        }
    }
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = None
    CELERY_TASK_ALWAYS_EAGER = True

# ==============================================================================
# AUTHENTICATION & API
# ==============================================================================
AUTH_USER_MODEL = "accounts.User"

DRIVER_SESSION_TTL_DAYS = int(os.getenv("DRIVER_SESSION_TTL_DAYS", 7))
REGISTRATION_TOKEN_TTL_HOURS = int(os.getenv("REGISTRATION_TOKEN_TTL_HOURS", 2))

SIMPLE_JWT = {
    "SIGNING_KEY": os.getenv("JWT_SIGNING_KEY", SECRET_KEY),
    "ALGORITHM": "HS256",
    "ACCESS_TOKEN_LIFETIME": timedelta(days=DRIVER_SESSION_TTL_DAYS),
    "AUTH_HEADER_TYPES": ("Bearer",),
}


def _rate(production):
    return "1000/minute" if TESTING else production


REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "apps.accounts.authentication.SecureJWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.OrderingFilter",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "apps.utils.exceptions.custom_exception_handler",
    "DEFAULT_THROTTLE_RATES": {
        "otp_send": _rate("10/hour"),
        "registration": _rate("60/hour"),
        "login": _rate("20/hour"),
        "location_ping": _rate("120/minute"),
    },
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Errand Driver API",
    "DESCRIPTION": "Driver onboarding and delivery lifecycle",
    "VERSION": "1.0.0",
}

# ==============================================================================
# DRIVER ONBOARDING: OTP, SMS, DOCUMENTS
# ==============================================================================
OTP_EXPIRY_SECONDS = int(os.getenv("OTP_EXPIRY_SECONDS", 300))
OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", 5))
OTP_MAX_REQUESTS_PER_HOUR = int(os.getenv("OTP_MAX_REQUESTS_PER_HOUR", 5))

# "dummy" only logs; anything else posts to SMS_PROVIDER_URL
SMS_PROVIDER = os.getenv("SMS_PROVIDER", "dummy")
SMS_PROVIDER_KEY = os.getenv("SMS_PROVIDER_KEY", "")
SMS_PROVIDER_SENDER_ID = os.getenv("SMS_PROVIDER_SENDER_ID", "ERRAND")
SMS_PROVIDER_URL = os.getenv("SMS_PROVIDER_URL", "")

AWS_STORAGE_BUCKET_NAME = os.getenv("AWS_STORAGE_BUCKET_NAME", "")
AWS_S3_REGION_NAME = os.getenv("AWS_S3_REGION_NAME", "")
AWS_QUERYSTRING_AUTH = True
AWS_DEFAULT_ACL = None

if AWS_STORAGE_BUCKET_NAME and not TESTING:
    DOCUMENT_STORAGE = {
        "BACKEND": "storages.backends.s3.S3Storage",
        "OPTIONS": {"location": "driver-uploads", "file_overwrite": False},
    }
else:
    _required("AWS_STORAGE_BUCKET_NAME")
    DOCUMENT_STORAGE = {"BACKEND": "django.core.files.storage.InMemoryStorage"}

DOCUMENT_MAX_UPLOAD_BYTES = int(os.getenv("DOCUMENT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
# Leave room for the multipart envelope around a max-size file
DATA_UPLOAD_MAX_MEMORY_SIZE = DOCUMENT_MAX_UPLOAD_BYTES + 1024 * 1024

# ==============================================================================
# DELIVERIES
# ==============================================================================
DELIVERY_HISTORY_DEFAULT_LIMIT = 10
DELIVERY_HISTORY_MAX_LIMIT = 100
DELIVERY_STUCK_AFTER_MINUTES = int(os.getenv("DELIVERY_STUCK_AFTER_MINUTES", "180"))

# ==============================================================================
# STATIC FILES
# ==============================================================================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": (
            "django.contrib.staticfiles.storage.StaticFilesStorage"
            if RELAXED
            else "whitenoise.storage.CompressedManifestStaticFilesStorage"
        ),
    },
    "documents": DOCUMENT_STORAGE,
}

# ==============================================================================
# EDGE: HTTPS, COOKIES, CORS
# ==============================================================================
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
USE_X_FORWARDED_HOST = True
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "SAMEORIGIN" if DEBUG else "DENY"

SESSION_COOKIE_HTTPONLY = True
CSRF_COOKIE_HTTPONLY = True
SESSION_COOKIE_SECURE = CSRF_COOKIE_SECURE = SECURE_SSL_REDIRECT = not RELAXED
if not RELAXED:
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True

if RELAXED:
    CORS_ALLOW_ALL_ORIGINS = True
else:
    CORS_ALLOWED_ORIGINS = _csv(_required("CORS_ALLOWED_ORIGINS"))
CORS_EXPOSE_HEADERS = ["X-Request-ID"]
CORS_ALLOW_HEADERS = list(default_headers) + ["x-request-id"]

# ==============================================================================
# OBSERVABILITY
# LOG_FORMAT=json switches the console to masked structured output
# ==============================================================================
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")


def _logger(level):
    return {"handlers": ["console"], "level": level, "propagate": False}


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation_id": {"()": "apps.utils.logging.CorrelationIdFilter"},
    },
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} [{correlation_id}] {message}",
            "style": "{",
        },
        "json": {"()": "apps.utils.logging.GDPRJsonFormatter"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["correlation_id"],
            "formatter": "json" if LOG_FORMAT == "json" else "verbose",
        },
    },
    "loggers": {
        "django": _logger("INFO"),
        "django.db.backends": _logger("WARNING"),
        "celery": _logger("INFO"),
        "apps": _logger("WARNING" if TESTING else LOG_LEVEL),
    },
}

SENTRY_DSN = os.getenv("SENTRY_DSN")
if SENTRY_DSN and not TESTING:
    try:
        sentry_sdk.init(
            dsn=SENTRY_DSN,
            integrations=[DjangoIntegration(), RedisIntegration(), CeleryIntegration()],
            environment=DJANGO_ENV,
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
            # Driver phones and emails stay out of Sentry
            send_default_pii=False,
        )
        logger.info("✅ Sentry initialized")
    except Exception as e:
        logger.warning(f"⚠️  Sentry init failed: {e}")

logger.info(f"✅ Settings loaded ({len(ERRAND_APPS)} errand apps, hosts={ALLOWED_HOSTS})")
