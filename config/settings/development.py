"""
Development settings for the Review Analyzer service.

SQLite and the database cache, so only Redis (for Celery) is needed
locally. Alerts are logged instead of pushed unless ALERTS_LOG_ONLY=False.
"""

import os
from .base import *

DEBUG = True

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

# Alert throttle records need a shared cache across web and worker
# processes. Run `python manage.py createcachetable` once.
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.db.DatabaseCache",
        "LOCATION": "analyzer_cache",
    }
}

# Run the pipeline in-process when no worker is running
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "False") == "True"

LOGGING["loggers"]["django"]["level"] = "INFO"
LOGGING["loggers"]["analyzer"]["level"] = "DEBUG"

AUTH_PASSWORD_VALIDATORS = []

ALERTS_LOG_ONLY = os.getenv("ALERTS_LOG_ONLY", "True") == "True"

# Short inline polls make local runs fail fast against a sandbox dataset
BRIGHTDATA_POLL_INTERVAL = int(os.getenv("BRIGHTDATA_POLL_INTERVAL", "5"))
