"""
Test settings for the Review Analyzer service.

Uses in-memory SQLite and eager Celery for fast test execution.
"""

import os
from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Cache - use local memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["analyzer"]["level"] = "WARNING"

# Password validators disabled for faster tests
AUTH_PASSWORD_VALIDATORS = []

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Test external services - never reach real endpoints
BRIGHTDATA_SCRAPER_API = "test-brightdata-key"
BRIGHTDATA_BASE_URL = "https://api.brightdata.test/datasets/v3"
BRIGHTDATA_POLL_INTERVAL = 0
BRIGHTDATA_POLL_ATTEMPTS = 3
AI_ANALYSIS_SERVICE_URL = "http://ai-service.test"
AI_ANALYSIS_SERVICE_TOKEN = "test-ai-token"
PUSHOVER_TOKEN = "test-pushover-token"
PUSHOVER_USER = "test-pushover-user"

# Test alerts - enabled so dispatch logic is exercised
ALERTS_ENABLED = True
ALERTS_ENABLED_TYPES = []
ALERTS_LOG_ONLY = False
