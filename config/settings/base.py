"""
Django base settings for the Review Analyzer service.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-analyzer-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "analyzer",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Redis Cache Configuration
# https://docs.djangoproject.com/en/4.2/topics/cache/
# Holds alert throttle records. Configured in environment-specific settings

CACHES = {
    # Override in environment-specific settings
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
# A retried task must survive a worker dying mid-run
CELERY_TASK_ACKS_LATE = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1


# Django REST Framework Configuration
# https://www.django-rest-framework.org/

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}


# DRF Spectacular (OpenAPI/Swagger) Configuration
# https://drf-spectacular.readthedocs.io/

SPECTACULAR_SETTINGS = {
    "TITLE": "Review Analyzer API",
    "DESCRIPTION": "Asynchronous Amazon review authenticity analysis",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "analyzer": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# External API Configuration

# BrightData datasets API (review scraping provider)
BRIGHTDATA_SCRAPER_API = os.getenv("BRIGHTDATA_SCRAPER_API", "")
BRIGHTDATA_DATASET_ID = os.getenv("BRIGHTDATA_DATASET_ID", "gd_le8e811kzy4ggddlq")
BRIGHTDATA_BASE_URL = os.getenv(
    "BRIGHTDATA_BASE_URL",
    "https://api.brightdata.com/datasets/v3"
)
BRIGHTDATA_MAX_REVIEWS = int(os.getenv("BRIGHTDATA_MAX_REVIEWS", "200"))

# Inline polling used by the analysis pipeline when reviews are missing.
# The whole run (trigger, interval x attempts of polling, download, AI
# scoring at AI_ANALYSIS_SERVICE_TIMEOUT, product page) shares the
# pipeline's 345s soft time limit, so polling gets about 150s.
BRIGHTDATA_POLL_INTERVAL = int(os.getenv("BRIGHTDATA_POLL_INTERVAL", "10"))
BRIGHTDATA_POLL_ATTEMPTS = int(os.getenv("BRIGHTDATA_POLL_ATTEMPTS", "15"))

# AI Analysis Service (review scoring and price analysis)
AI_ANALYSIS_SERVICE_URL = os.getenv(
    "AI_ANALYSIS_SERVICE_URL",
    "http://localhost:8000"
)
AI_ANALYSIS_SERVICE_TOKEN = os.getenv("AI_ANALYSIS_SERVICE_TOKEN", "")
AI_ANALYSIS_SERVICE_TIMEOUT = float(os.getenv("AI_ANALYSIS_SERVICE_TIMEOUT", "120"))

# Pushover (operator alerts)
PUSHOVER_TOKEN = os.getenv("PUSHOVER_TOKEN", "")
PUSHOVER_USER = os.getenv("PUSHOVER_USER", "")


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

# Initialize Sentry
import sentry_sdk

sentry_sdk.init(
    dsn=SENTRY_DSN,
    # Visitor IPs and browser session cookies stay out of events
    send_default_pii=False,
    traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
    environment=SENTRY_ENVIRONMENT,
)


# Alert Configuration

ALERTS_ENABLED = os.getenv("ALERTS_ENABLED", "True") == "True"

# Comma separated alert type values; empty means every type is enabled
ALERTS_ENABLED_TYPES = [
    t.strip() for t in os.getenv("ALERTS_ENABLED_TYPES", "").split(",") if t.strip()
]

# Log alerts without calling Pushover
ALERTS_LOG_ONLY = os.getenv("ALERTS_LOG_ONLY", "False") == "True"


# Analyzer Configuration

# Sessions older than this are purged by the cleanup sweep (hours)
ANALYZER_SESSION_RETENTION_HOURS = int(
    os.getenv("ANALYZER_SESSION_RETENTION_HOURS", "24")
)

# An in-progress session for the same user and ASIN is reused within this window
ANALYZER_SESSION_REUSE_MINUTES = int(os.getenv("ANALYZER_SESSION_REUSE_MINUTES", "5"))

# Per-review score at or above which a review counts as fake
ANALYZER_FAKE_SCORE_THRESHOLD = int(os.getenv("ANALYZER_FAKE_SCORE_THRESHOLD", "70"))

# Timeout for product page fetches (seconds)
ANALYZER_PRODUCT_PAGE_TIMEOUT = float(os.getenv("ANALYZER_PRODUCT_PAGE_TIMEOUT", "30"))

# Client polling interval advertised to the frontend (milliseconds)
ANALYZER_POLLING_INTERVAL_MS = int(os.getenv("ANALYZER_POLLING_INTERVAL_MS", "2000"))
