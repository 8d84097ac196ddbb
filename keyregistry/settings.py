import os
from pathlib import Path

from keyregistry.caching import cache_settings

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")
ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "registry",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "keyregistry.urls"
WSGI_APPLICATION = "keyregistry.wsgi.application"

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
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("REGISTRY_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

# Entry reads are cached; multi-process deployments need a shared backend so
# that a write on one worker invalidates the entry for all of them.
REGISTRY_CACHE_URL = os.environ.get("REGISTRY_CACHE_URL", "")

CACHES = cache_settings(REGISTRY_CACHE_URL)

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"
STATIC_URL = "static/"

# Caller identity arrives in the X-Caller header; no session or token auth.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Key Registry API",
    "DESCRIPTION": "Access-controlled, versioned key/value registry with owner enumeration, "
    "moderator freezing and administrative pausing.",
    "VERSION": "1.0.0",
}

# Registry engine
REGISTRY_ADMIN = os.environ.get("REGISTRY_ADMIN", "admin")
# Must not exceed the 255-character key column.
REGISTRY_MAX_KEY_LENGTH = int(os.environ.get("REGISTRY_MAX_KEY_LENGTH", "128"))
REGISTRY_MAX_VALUE_LENGTH = int(os.environ.get("REGISTRY_MAX_VALUE_LENGTH", "256"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "registry": {
            "handlers": ["console"],
            "level": os.environ.get("REGISTRY_LOG_LEVEL", "INFO"),
        },
    },
}
