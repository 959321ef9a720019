"""
Centralized conversion of exceptions into user-facing messages.

Every message stored in AnalysisSession.error_message goes through
handle_exception(); raw exception text never reaches a client. The full
exception is logged and sent to Sentry instead.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import requests
from celery.exceptions import SoftTimeLimitExceeded

from analyzer.exceptions import (
    ExternalServiceError,
    InvalidProductUrlError,
    RecordNotFoundError,
)
from analyzer.monitoring.sentry_integration import capture_analysis_error

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Categories of analysis failures."""

    TIMEOUT = "TIMEOUT"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    DATA_TYPE_ERROR = "DATA_TYPE_ERROR"
    FETCHING_FAILED = "FETCHING_FAILED"
    OPENAI_ERROR = "OPENAI_ERROR"
    INVALID_URL = "INVALID_URL"
    UNKNOWN = "UNKNOWN"


USER_MESSAGES = {
    ErrorType.TIMEOUT: "The request took too long to complete. Please try again.",
    ErrorType.PRODUCT_NOT_FOUND: "Product not found. Please check the URL and try again.",
    ErrorType.DATA_TYPE_ERROR: "Data processing error occurred. Please try again.",
    ErrorType.FETCHING_FAILED: "Unable to fetch reviews at this time. Please try again later.",
    ErrorType.OPENAI_ERROR: "Analysis service is temporarily unavailable. Please try again later.",
    ErrorType.INVALID_URL: "Please provide a valid Amazon product URL.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again later.",
}

TIMEOUT_EXCEPTIONS = (
    TimeoutError,
    requests.Timeout,
    httpx.TimeoutException,
    SoftTimeLimitExceeded,
)
TIMEOUT_MARKERS = ("timed out", "operation timed out", "curl error 28")


@dataclass
class ClassifiedError:
    """Result of classifying an exception."""

    error_type: ErrorType
    user_message: str


def classify(error: BaseException) -> ClassifiedError:
    """Map an exception to a category and sanitized message."""
    text = str(error).lower()

    if isinstance(error, InvalidProductUrlError):
        error_type = ErrorType.INVALID_URL
    elif isinstance(error, RecordNotFoundError):
        error_type = ErrorType.PRODUCT_NOT_FOUND
    elif isinstance(error, TIMEOUT_EXCEPTIONS) or any(m in text for m in TIMEOUT_MARKERS):
        error_type = ErrorType.TIMEOUT
    elif isinstance(error, ExternalServiceError) and error.service == "ai":
        error_type = ErrorType.OPENAI_ERROR
    elif isinstance(error, ExternalServiceError) or "failed to fetch reviews" in text:
        error_type = ErrorType.FETCHING_FAILED
    elif isinstance(error, (TypeError, ValueError, KeyError)):
        error_type = ErrorType.DATA_TYPE_ERROR
    else:
        error_type = ErrorType.UNKNOWN

    return ClassifiedError(error_type=error_type, user_message=USER_MESSAGES[error_type])


def handle_exception(
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Log and report an exception, returning the message safe to show users.

    Args:
        error: The exception raised during analysis
        context: session_id, asin and other identifiers for the log record

    Returns:
        Sanitized user-facing message
    """
    context = context or {}
    classified = classify(error)

    logger.error(
        f"Analysis error [{classified.error_type.value}] "
        f"{type(error).__name__}: {error} context={context}",
        exc_info=error,
    )
    capture_analysis_error(
        error=error,
        session_id=context.get("session_id"),
        asin=context.get("asin"),
        error_type=classified.error_type.value,
        extra_context=context,
    )

    return classified.user_message
