from pathlib import Path
import os

import dj_database_url
import sentry_sdk
from dotenv import load_dotenv
from sentry_sdk.integrations.django import DjangoIntegration


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")  # explicit .env location

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY") or os.getenv("SECRET_KEY") or "dev-key"


def _get_bool_env(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if not raw_value:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_list_env(name: str) -> list[str]:
    raw_value = os.getenv(name, "")
    if not raw_value:
        return []
    parts = raw_value.replace(";", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


DEBUG = _get_bool_env("DJANGO_DEBUG", _get_bool_env("DEBUG", True))

base_allowed_hosts = ["localhost", "127.0.0.1", "testserver"]
env_allowed_hosts = _get_list_env("DJANGO_ALLOWED_HOSTS")
ALLOWED_HOSTS = list(dict.fromkeys(base_allowed_hosts + env_allowed_hosts))

CSRF_TRUSTED_ORIGINS = _get_list_env("CSRF_TRUSTED_ORIGINS")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",

    # Third-party
    "rest_framework",

    # Project apps
    "core",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "bynkbook_project.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
            ],
        },
    }
]

WSGI_APPLICATION = "bynkbook_project.wsgi.application"

default_db = "sqlite:///" + str((BASE_DIR / "db.sqlite3").resolve())
database_url = os.getenv("DATABASE_URL", default_db)
DATABASES = {"default": dj_database_url.parse(database_url)}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
}

# Cookie flags (safe defaults; local dev unaffected when DEBUG=True)
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# --- Reconciliation core ---

# Emergency override for role-policy enforcement. Only OFF or SOFT are honoured.
AUTHZ_FORCE_MODE = os.getenv("AUTHZ_FORCE_MODE", "").strip().upper()

# Upper bound for GET .../bank-transactions?limit=
BANK_TXN_LIST_DEFAULT_LIMIT = 200
BANK_TXN_LIST_MAX_LIMIT = _get_int_env("BANK_TXN_LIST_MAX_LIMIT", 500)

# --- Sentry & production security hardening ---

SENTRY_DSN = os.getenv("SENTRY_DSN", "")

if not DEBUG:
    # Error monitoring (Sentry)
    if SENTRY_DSN:
        sentry_sdk.init(
            dsn=SENTRY_DSN,
            integrations=[DjangoIntegration()],
            traces_sample_rate=0.1,   # sample 10% of requests for performance traces
            send_default_pii=False,   # keep it privacy-friendly
            environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        )

    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SECURE_SSL_REDIRECT = _get_bool_env("SECURE_SSL_REDIRECT", True)

    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True

    SESSION_COOKIE_SAMESITE = "Lax"
    CSRF_COOKIE_SAMESITE = "Lax"
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "loggers": {
        "core": {
            "handlers": ["console"],
            "level": os.getenv("CORE_LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}
