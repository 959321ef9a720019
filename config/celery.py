"""
Celery configuration for the Review Analyzer service.

Each job family runs on its own named queue so that a backlog in one
(e.g. a slow scraping provider) cannot starve the others.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("review_analyzer")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Configure task queues for different job families
app.conf.task_queues = {
    "scraping": {
        "exchange": "scraping",
        "routing_key": "scraping",
    },
    "price-analysis": {
        "exchange": "price-analysis",
        "routing_key": "price-analysis",
    },
    "analysis": {
        "exchange": "analysis",
        "routing_key": "analysis",
    },
    "product-scraping": {
        "exchange": "product-scraping",
        "routing_key": "product-scraping",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Route specific tasks to their queues
app.conf.task_routes = {
    # Scrape job chain: trigger -> poll -> process
    "analyzer.tasks.trigger_scrape": {"queue": "scraping"},
    "analyzer.tasks.poll_scrape_progress": {"queue": "scraping"},
    "analyzer.tasks.process_scrape_results": {"queue": "scraping"},
    "analyzer.tasks.run_analysis_pipeline": {"queue": "analysis"},
    "analyzer.tasks.run_price_analysis": {"queue": "price-analysis"},
    "analyzer.tasks.scrape_product_metadata": {"queue": "product-scraping"},
    "analyzer.tasks.cleanup_analysis_sessions": {"queue": "default"},
}

# Configure Celery Beat schedule for periodic tasks
app.conf.beat_schedule = {
    "cleanup-analysis-sessions-hourly": {
        "task": "analyzer.tasks.cleanup_analysis_sessions",
        "schedule": crontab(minute=0),  # Every hour
    },
}
