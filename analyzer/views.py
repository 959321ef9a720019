"""
Review Analyzer views.

Includes health check endpoint for monitoring and load balancer checks.
"""

from datetime import timedelta

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from django.utils import timezone

from analyzer.models import AnalysisSession, SessionStatus

HEALTH_CACHE_KEY = "health_check:ping"


def get_celery_worker_count():
    """
    Get the count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if Celery not available.
    """
    try:
        from config.celery import app as celery_app

        inspect = celery_app.control.inspect(timeout=1.0)
        active = inspect.active()
        if active:
            return len(active)
        return 0
    except Exception:
        return 0


def check_cache():
    """
    Round-trip a value through the configured cache.

    Returns:
        "connected" or "error"
    """
    try:
        cache.set(HEALTH_CACHE_KEY, "ok", 10)
        if cache.get(HEALTH_CACHE_KEY) == "ok":
            return "connected"
        return "error"
    except Exception:
        return "error"


def health_check(request):
    """
    Health check endpoint for the analyzer service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - cache: "connected" or "error" (alert throttling depends on it)
        - celery_workers: integer count of active workers
        - sessions_in_progress: pending and processing sessions
        - sessions_failed_24h: sessions failed in the last 24 hours

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    # Check database connection
    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception:
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    cache_status = check_cache()
    if cache_status != "connected":
        status = "unhealthy"
        http_status = 503

    # Check Celery workers (graceful degradation)
    celery_workers = get_celery_worker_count()

    sessions_in_progress = None
    sessions_failed_24h = None
    if database_status == "connected":
        try:
            sessions_in_progress = AnalysisSession.objects.filter(
                status__in=[SessionStatus.PENDING, SessionStatus.PROCESSING]
            ).count()
            sessions_failed_24h = AnalysisSession.objects.filter(
                status=SessionStatus.FAILED,
                completed_at__gte=timezone.now() - timedelta(hours=24),
            ).count()
        except Exception:
            # Counts are informational; keep the check usable without them
            pass

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "cache": cache_status,
            "celery_workers": celery_workers,
            "sessions_in_progress": sessions_in_progress,
            "sessions_failed_24h": sessions_failed_24h,
        },
        status=http_status,
    )
