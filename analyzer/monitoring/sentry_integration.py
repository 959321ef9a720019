"""
Sentry error tracking integration for the analyzer.

- Sentry SDK is initialised in settings/base.py
- Adds breadcrumbs for pipeline context (session, ASIN, step)
- Filters sensitive data (API keys, tokens)
- Captures exceptions and operator alerts with proper context

Usage:
    from analyzer.monitoring import capture_analysis_error

    try:
        service.fetch_reviews(asin, country, url)
    except Exception as e:
        capture_analysis_error(error=e, session_id=session.id, asin=asin)
"""

import logging
from typing import Dict, Any, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Filter sensitive data from a dictionary.

    Replaces values for keys that match sensitive field names.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Dictionary with sensitive values replaced
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()

        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def add_analysis_breadcrumb(
    message: str,
    session_id: Optional[str] = None,
    asin: Optional[str] = None,
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to Sentry for pipeline context.

    Args:
        message: Description of the operation
        session_id: AnalysisSession id
        asin: Product ASIN
        level: Log level (info, warning, error)
        extra_data: Additional context data
    """
    breadcrumb_data = {
        "session_id": str(session_id) if session_id else None,
        "asin": asin,
    }
    if extra_data:
        breadcrumb_data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(
            category="analysis",
            message=message,
            level=level,
            data=breadcrumb_data,
        )
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_analysis_error(
    error: Exception,
    session_id: Optional[str] = None,
    asin: Optional[str] = None,
    error_type: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an analysis error to Sentry with full context.

    Args:
        error: The exception that occurred
        session_id: AnalysisSession id (optional)
        asin: Product ASIN (optional)
        error_type: Classifier category (TIMEOUT, OPENAI_ERROR, ...)
        extra_context: Additional context (filtered for sensitive data)
    """
    try:
        with sentry_sdk.new_scope() as scope:
            if error_type:
                scope.set_tag("analysis.error_type", error_type)
            if asin:
                scope.set_tag("analysis.asin", asin)
            if session_id:
                scope.set_extra("session_id", str(session_id))
            if extra_context:
                scope.set_extra("analysis_context", _filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    alert_type: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an operator alert message to Sentry.

    Args:
        message: Alert message
        level: Severity level (warning, error, fatal)
        alert_type: AlertType value
        extra_data: Additional alert data
    """
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", alert_type or "operator_alert")
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
