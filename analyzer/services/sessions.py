"""
Session operations behind the analysis API.

- start_analysis: create (or reuse) a session and queue the pipeline
- get_progress: client-facing progress snapshot
- cancel_analysis: fail a running session on the user's request
- cleanup_sessions: delete sessions past the retention window
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone

from analyzer.exceptions import AnalyzerError, RecordNotFoundError
from analyzer.models import AnalysisSession, SessionStatus
from analyzer.monitoring.error_classifier import handle_exception
from analyzer.services.amazon_urls import parse_product_url

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Analysis cancelled by user"


class SessionAlreadyFinishedError(AnalyzerError):
    """The session is completed or failed and can no longer change."""

    pass


def _get_session(session_id) -> AnalysisSession:
    try:
        return AnalysisSession.objects.get(id=session_id)
    except (AnalysisSession.DoesNotExist, ValidationError, ValueError):
        raise RecordNotFoundError(f"Analysis session {session_id} not found")


def start_analysis(product_url: str, user_session: str = "") -> Tuple[AnalysisSession, bool]:
    """
    Create a session for a product URL and queue the pipeline.

    A pending or processing session for the same browser session and
    ASIN created within ANALYZER_SESSION_REUSE_MINUTES is returned
    instead of starting a duplicate run.

    Returns:
        (session, created)

    Raises:
        InvalidProductUrlError: If the URL is not an Amazon product URL
    """
    from analyzer.tasks import run_analysis_pipeline

    asin, country, canonical_url = parse_product_url(product_url)

    if user_session:
        window = timezone.now() - timedelta(minutes=settings.ANALYZER_SESSION_REUSE_MINUTES)
        existing = (
            AnalysisSession.objects.filter(
                user_session=user_session,
                asin=asin,
                status__in=[SessionStatus.PENDING, SessionStatus.PROCESSING],
                created_at__gte=window,
            )
            .order_by("-created_at")
            .first()
        )
        if existing:
            logger.info(f"Reusing analysis session {existing.id} for {asin}")
            return existing, False

    session = AnalysisSession.objects.create(
        user_session=user_session or "",
        asin=asin,
        product_url=canonical_url,
    )

    try:
        run_analysis_pipeline.apply_async(args=[str(session.id)], queue="analysis")
    except Exception as e:
        session.mark_failed(handle_exception(e, {"session_id": str(session.id), "asin": asin}))
        raise

    logger.info(f"Analysis session {session.id} queued for {asin} ({country})")
    return session, True


def get_progress(session_id) -> Dict[str, Any]:
    """
    Progress snapshot for polling clients.

    Raises:
        RecordNotFoundError: If the session does not exist
    """
    session = _get_session(session_id)

    data = {
        "session_id": str(session.id),
        "status": session.status,
        "asin": session.asin,
        "current_step": session.current_step,
        "total_steps": session.total_steps,
        "progress_percentage": session.progress_percentage,
        "current_message": session.current_message,
        "is_processing": session.is_processing,
        "polling_interval_ms": settings.ANALYZER_POLLING_INTERVAL_MS,
    }

    if session.is_completed:
        data["result"] = session.result
        data["redirect_url"] = (session.result or {}).get("redirect_url")
    elif session.is_failed:
        data["error"] = session.error_message

    return data


def cancel_analysis(session_id) -> AnalysisSession:
    """
    Fail a pending or processing session on the user's request.

    The running pipeline notices at its next progress write and stops.

    Raises:
        RecordNotFoundError: If the session does not exist
        SessionAlreadyFinishedError: If the session is already terminal
    """
    session = _get_session(session_id)

    if session.is_terminal or not session.mark_failed(CANCELLED_MESSAGE):
        raise SessionAlreadyFinishedError(
            f"Analysis session {session_id} is already {session.status}"
        )

    logger.info(f"Analysis session {session_id} cancelled by user")
    return session


def cleanup_sessions(hours: Optional[int] = None, dry_run: bool = False) -> int:
    """
    Delete sessions older than `hours`, whatever their status.

    A pending or processing row past retention belongs to a crashed or
    lost worker; a pipeline still holding one stops at its next progress
    write once the row is gone.

    Returns:
        Number of sessions deleted (or that would be deleted on a dry run)
    """
    if hours is None:
        hours = settings.ANALYZER_SESSION_RETENTION_HOURS

    cutoff = timezone.now() - timedelta(hours=hours)
    queryset = AnalysisSession.objects.filter(created_at__lt=cutoff)

    if dry_run:
        return queryset.count()

    deleted, _ = queryset.delete()
    if deleted:
        logger.info(f"Deleted {deleted} analysis session(s) older than {hours}h")
    return deleted
