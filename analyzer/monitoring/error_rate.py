"""
Error-rate alerting for external services.

Individual failures are logged and counted per (service, error type) in
the Django cache. An operator alert goes out only when the number of
failures inside a window reaches a severity threshold:

    CRITICAL_P0   10 failures in 5 minutes
    HIGH_P1        5 failures in 10 minutes
    MEDIUM_P2      3 failures in 15 minutes
    LOW_P3         1 failure in 60 minutes    (logged, never pushed)

Severity is lowered one level for core services and two for fallback
services. Each (service, error type, severity) has its own throttle
window, so an escalation still goes out while a lower level is
throttled. After a recorded recovery, medium and low alerts for the
same service and error type are held back for 30 minutes.

Usage:
    monitor = get_error_rate_monitor()
    monitor.record_failure(SERVICE_BRIGHTDATA_API, "JOB_TRIGGER_FAILED", str(e), {"asin": asin})
    monitor.record_recovery(SERVICE_BRIGHTDATA_API, "JOB_TRIGGER_FAILED")

Counting needs the cache; while it is unreachable failures are only
logged. Recording never raises.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from django.core.cache import cache
from django.utils import timezone
from django.utils.text import slugify

from analyzer.monitoring.alert_types import AlertPriority, AlertType
from analyzer.monitoring.alerts import AlertDispatcher, get_alert_dispatcher

logger = logging.getLogger(__name__)

SERVICE_BRIGHTDATA_SCRAPER = "BrightData Web Scraper"
SERVICE_BRIGHTDATA_API = "BrightData API"
SERVICE_AI_ANALYSIS = "AI Analysis Service"
SERVICE_AMAZON_PAGE = "Amazon Product Page"

KEY_PREFIX = "error_rate"

# Failure timestamps are kept this long, capped at MAX_TRACKED_FAILURES
HISTORY_SECONDS = 24 * 60 * 60
MAX_TRACKED_FAILURES = 500

RECOVERY_SUPPRESSION_MINUTES = 30


class Severity(Enum):
    CRITICAL_P0 = "CRITICAL_P0"
    HIGH_P1 = "HIGH_P1"
    MEDIUM_P2 = "MEDIUM_P2"
    LOW_P3 = "LOW_P3"
    SUPPRESS = "SUPPRESS"


# Most to least severe
SEVERITY_ORDER = [
    Severity.CRITICAL_P0,
    Severity.HIGH_P1,
    Severity.MEDIUM_P2,
    Severity.LOW_P3,
    Severity.SUPPRESS,
]


class Criticality(Enum):
    PRIMARY = "PRIMARY"
    CORE = "CORE"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class RateThreshold:
    severity: Severity
    failures: int
    window_minutes: int


THRESHOLDS = (
    RateThreshold(Severity.CRITICAL_P0, 10, 5),
    RateThreshold(Severity.HIGH_P1, 5, 10),
    RateThreshold(Severity.MEDIUM_P2, 3, 15),
    RateThreshold(Severity.LOW_P3, 1, 60),
)

SERVICE_CRITICALITY = {
    SERVICE_BRIGHTDATA_SCRAPER: Criticality.PRIMARY,
    SERVICE_BRIGHTDATA_API: Criticality.PRIMARY,
    SERVICE_AI_ANALYSIS: Criticality.CORE,
    SERVICE_AMAZON_PAGE: Criticality.FALLBACK,
}

# Levels a base severity drops by for each criticality
CRITICALITY_DOWNGRADE = {
    Criticality.PRIMARY: 0,
    Criticality.CORE: 1,
    Criticality.FALLBACK: 2,
}

USER_FACING = {
    Criticality.PRIMARY: True,
    Criticality.CORE: True,
    Criticality.FALLBACK: False,
}

THROTTLE_MINUTES = {
    Severity.CRITICAL_P0: 5,
    Severity.HIGH_P1: 15,
    Severity.MEDIUM_P2: 60,
    Severity.LOW_P3: 240,
}

PUSH_PRIORITY = {
    Severity.CRITICAL_P0: AlertPriority.EMERGENCY,
    Severity.HIGH_P1: AlertPriority.HIGH,
    Severity.MEDIUM_P2: AlertPriority.NORMAL,
}

# Severities that a recent recovery cannot hold back
ESCALATION_SEVERITIES = (Severity.CRITICAL_P0, Severity.HIGH_P1)


def downgrade(severity: Severity, criticality: Criticality) -> Severity:
    """Lower a threshold severity according to how critical the service is."""
    if severity == Severity.SUPPRESS:
        return severity
    index = SEVERITY_ORDER.index(severity) + CRITICALITY_DOWNGRADE[criticality]
    return SEVERITY_ORDER[min(index, len(SEVERITY_ORDER) - 1)]


def alert_type_for(error_type: str) -> AlertType:
    """Pick the operator alert type for an error classification."""
    if "TIMEOUT" in error_type:
        return AlertType.API_TIMEOUT
    if "SESSION_EXPIRED" in error_type:
        return AlertType.AMAZON_SESSION_EXPIRED
    if "QUOTA_EXCEEDED" in error_type:
        return AlertType.OPENAI_QUOTA_EXCEEDED
    if "RATE_LIMIT" in error_type:
        return AlertType.RATE_LIMIT_EXCEEDED
    return AlertType.CONNECTIVITY_ISSUE


def recommended_action(service: str, error_type: str) -> str:
    if service in (SERVICE_BRIGHTDATA_SCRAPER, SERVICE_BRIGHTDATA_API):
        if error_type == "JOB_TRIGGER_FAILED":
            return "Check BrightData API status and authentication credentials"
        if error_type == "RATE_LIMIT_EXCEEDED":
            return "Too many running BrightData jobs; cancel stale snapshots"
        if error_type in ("POLLING_FAILED", "POLLING_TIMEOUT"):
            return "Monitor job completion manually, check for service degradation"
        if error_type == "SCRAPING_FAILED":
            return "Verify Amazon target accessibility and BrightData dataset configuration"
        return "Check BrightData service status and API connectivity"

    if service == SERVICE_AI_ANALYSIS:
        if "QUOTA_EXCEEDED" in error_type:
            return "Check AI provider billing and quota limits"
        return "Check AI analysis service status and API token"

    if service == SERVICE_AMAZON_PAGE:
        return "Expected for fallback scraping; verify BrightData is healthy"

    return "Investigate service logs and check external dependencies"


class ErrorRateMonitor:
    """
    Turns per-call service failures into rate-based operator alerts.

    Args:
        dispatcher: Alert dispatcher used for pushes (defaults to the global one)
        cache_backend: Cache holding failure history, throttles and recoveries
    """

    def __init__(self, dispatcher: Optional[AlertDispatcher] = None, cache_backend=None):
        self._dispatcher = dispatcher
        self.cache = cache_backend or cache

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher or get_alert_dispatcher()

    def _key(self, kind: str, service: str, error_type: str, *parts: str) -> str:
        return ":".join([KEY_PREFIX, kind, slugify(service), error_type.lower(), *parts])

    def record_failure(
        self,
        service: str,
        error_type: str,
        error_message: str,
        context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> Optional[Severity]:
        """
        Record one failure and alert if a rate threshold is reached.

        Args:
            service: Service name, e.g. SERVICE_BRIGHTDATA_API
            error_type: Error classification, e.g. "JOB_TRIGGER_FAILED"
            error_message: Human-readable error text
            context: Extra details (asin, job_id, ...)
            exception: Original exception, if any

        Returns:
            The severity an alert was dispatched at, or None
        """
        logger.warning(
            f"Service failure recorded: {service} {error_type}: {error_message}"
            + (f" ({type(exception).__name__})" if exception is not None else "")
        )

        try:
            timestamps = self._append_failure(service, error_type)
        except Exception as e:
            logger.error(f"Could not record {service} {error_type} failure: {e}")
            return None

        criticality = SERVICE_CRITICALITY.get(service, Criticality.FALLBACK)
        severity, threshold = self._severity(timestamps, criticality)

        if severity in (Severity.SUPPRESS, Severity.LOW_P3):
            logger.debug(f"{service} {error_type} below alert thresholds ({severity.value})")
            return None

        try:
            if self._is_suppressed(service, error_type, severity):
                logger.info(
                    f"Alert for {service} {error_type} at {severity.value} suppressed "
                    f"by recent recovery or throttling"
                )
                return None
            self.cache.set(
                self._key("throttle", service, error_type, severity.value.lower()),
                timezone.now().isoformat(),
                THROTTLE_MINUTES[severity] * 60,
            )
        except Exception as e:
            # Fail open: dispatch without suppression
            logger.error(f"Alert suppression check failed for {service} {error_type}: {e}")

        failures = self._count_within(timestamps, threshold.window_minutes)
        self._dispatch(
            service,
            error_type,
            error_message,
            severity,
            criticality,
            failures,
            threshold.window_minutes,
            context,
        )
        return severity

    def record_recovery(self, service: str, error_type: str) -> bool:
        """
        Mark a service as recovered after failures.

        Only acts when there is failure history for the pair; routine
        successes leave no trace. Returns True when a recovery was recorded.
        """
        try:
            if not self._load(service, error_type):
                return False
            self.cache.set(
                self._key("recovery", service, error_type),
                timezone.now().isoformat(),
                RECOVERY_SUPPRESSION_MINUTES * 60,
            )
        except Exception as e:
            logger.error(f"Could not record {service} {error_type} recovery: {e}")
            return False

        logger.info(f"Service recovery recorded: {service} {error_type}")
        return True

    def get_error_rate(
        self, service: str, error_type: str, window_minutes: int = 10
    ) -> Dict[str, Any]:
        """Failure count and per-minute rate for a window."""
        try:
            timestamps = self._load(service, error_type)
        except Exception as e:
            logger.error(f"Could not read {service} {error_type} failure history: {e}")
            timestamps = []

        cutoff = time.time() - window_minutes * 60
        recent = [ts for ts in timestamps if ts > cutoff]
        return {
            "failures": len(recent),
            "window_minutes": window_minutes,
            "rate_per_minute": len(recent) / window_minutes,
            "timestamps": recent,
        }

    # Internals

    def _load(self, service: str, error_type: str) -> List[float]:
        return list(self.cache.get(self._key("failures", service, error_type)) or [])

    def _append_failure(self, service: str, error_type: str) -> List[float]:
        now = time.time()
        cutoff = now - HISTORY_SECONDS
        timestamps = [ts for ts in self._load(service, error_type) if ts > cutoff]
        timestamps.append(now)
        timestamps = timestamps[-MAX_TRACKED_FAILURES:]
        self.cache.set(self._key("failures", service, error_type), timestamps, HISTORY_SECONDS)
        return timestamps

    @staticmethod
    def _count_within(timestamps: List[float], window_minutes: int) -> int:
        cutoff = time.time() - window_minutes * 60
        return sum(1 for ts in timestamps if ts > cutoff)

    def _severity(self, timestamps: List[float], criticality: Criticality):
        for threshold in THRESHOLDS:
            if self._count_within(timestamps, threshold.window_minutes) >= threshold.failures:
                return downgrade(threshold.severity, criticality), threshold
        return Severity.SUPPRESS, THRESHOLDS[-1]

    def _is_suppressed(self, service: str, error_type: str, severity: Severity) -> bool:
        if severity not in ESCALATION_SEVERITIES:
            if self.cache.get(self._key("recovery", service, error_type)) is not None:
                return True
        throttle = self._key("throttle", service, error_type, severity.value.lower())
        return self.cache.get(throttle) is not None

    def _dispatch(
        self,
        service: str,
        error_type: str,
        error_message: str,
        severity: Severity,
        criticality: Criticality,
        failures: int,
        window_minutes: int,
        context: Optional[Dict[str, Any]],
    ) -> bool:
        impact = "User-facing" if USER_FACING[criticality] else "Internal"
        message = (
            f"[{severity.value}] {impact} {service} issue: {failures} {error_type} "
            f"error(s) in {window_minutes} minutes. {error_message}"
        )
        # Caller context first; the alert body shows only the first lines
        details = {
            **(context or {}),
            "recommended_action": recommended_action(service, error_type),
            "service_criticality": criticality.value,
        }
        return self.dispatcher.send(
            alert_type_for(error_type),
            message,
            details,
            priority=PUSH_PRIORITY[severity],
            throttle=False,
        )


_error_rate_monitor: Optional[ErrorRateMonitor] = None


def get_error_rate_monitor() -> ErrorRateMonitor:
    """Get the global error rate monitor instance."""
    global _error_rate_monitor

    if _error_rate_monitor is None:
        _error_rate_monitor = ErrorRateMonitor()

    return _error_rate_monitor
