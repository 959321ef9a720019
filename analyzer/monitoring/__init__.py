"""
Monitoring and alerting for the analyzer.

- Operator alerts to Pushover with per-type throttling
- Rate-based alerting for repeated external service failures
- Sentry error tracking with analysis context
- Centralized sanitizing of user-facing error messages
"""

from .alert_types import AlertPriority, AlertType
from .alerts import AlertDispatcher, get_alert_dispatcher
from .error_classifier import ErrorType, classify, handle_exception
from .error_rate import ErrorRateMonitor, Severity, get_error_rate_monitor
from .sentry_integration import capture_alert, capture_analysis_error

__all__ = [
    "AlertPriority",
    "AlertType",
    "AlertDispatcher",
    "get_alert_dispatcher",
    "ErrorRateMonitor",
    "Severity",
    "get_error_rate_monitor",
    "ErrorType",
    "classify",
    "handle_exception",
    "capture_alert",
    "capture_analysis_error",
]
