"""
Operator alert dispatch.

Routes alerts to Pushover and mirrors them to Sentry. Throttled alert
types are suppressed while a throttle record for the type is alive in
the Django cache, so a burst of identical failures produces one push.

Usage:
    dispatcher = get_alert_dispatcher()
    dispatcher.api_timeout("BrightData", context={"job_id": job_id})

Sending never raises; failures are logged.
"""

import json
import logging
from typing import Any, Dict, Optional, Union

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from analyzer.monitoring.alert_types import AlertPriority, AlertType
from analyzer.monitoring.pushover import PushoverChannel, PushoverMessage
from analyzer.monitoring.sentry_integration import capture_alert
from analyzer.services.ports import PushChannel

logger = logging.getLogger(__name__)

THROTTLE_KEY_PREFIX = "alert_throttle"

# Context keys never rendered into an alert body
EXCLUDED_CONTEXT_KEYS = {"trace", "password", "token", "secret"}

MAX_CONTEXT_LINES = 5

LOG_LEVELS = {
    AlertPriority.EMERGENCY: logging.CRITICAL,
    AlertPriority.HIGH: logging.ERROR,
}

SENTRY_LEVELS = {
    AlertPriority.EMERGENCY: "fatal",
    AlertPriority.HIGH: "error",
}


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple)) and len(value) <= 3:
        return ", ".join(str(item) for item in value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def format_context(context: Optional[Dict[str, Any]]) -> str:
    """
    Render alert context as "Key: value" lines.

    Sensitive keys are dropped and at most MAX_CONTEXT_LINES lines are kept.
    """
    if not context:
        return ""

    lines = []
    for key, value in context.items():
        if key in EXCLUDED_CONTEXT_KEYS:
            continue
        label = str(key).replace("_", " ")
        label = label[:1].upper() + label[1:]
        lines.append(f"{label}: {_format_value(value)}")

    return "\n".join(lines[:MAX_CONTEXT_LINES])


def build_alert_message(text: str, context: Optional[Dict[str, Any]] = None) -> str:
    formatted = format_context(context)
    if formatted:
        return f"{text}\n\n{formatted}"
    return text


def throttle_key(alert_type: AlertType) -> str:
    return f"{THROTTLE_KEY_PREFIX}:{alert_type.value}"


class AlertDispatcher:
    """
    Classifies, throttles and emits operator alerts.

    Configuration (Django settings):
    - ALERTS_ENABLED: master switch
    - ALERTS_ENABLED_TYPES: allow-list of type values, empty for all
    - ALERTS_LOG_ONLY: log and mirror to Sentry without pushing
    - PUSHOVER_TOKEN / PUSHOVER_USER: push credentials
    """

    def __init__(self, channel: Optional[PushChannel] = None, cache_backend=None):
        self.channel = channel or PushoverChannel()
        self.cache = cache_backend or cache

    def send(
        self,
        alert_type: Union[AlertType, str],
        message: str,
        context: Optional[Dict[str, Any]] = None,
        priority: Optional[int] = None,
        sound: Optional[str] = None,
        url: Optional[str] = None,
        url_title: Optional[str] = None,
        throttle: bool = True,
    ) -> bool:
        """
        Dispatch one alert.

        Args:
            alert_type: AlertType or its string value
            message: Alert text
            context: Extra key/value pairs rendered under the text
            priority: Override for the type's default priority
            sound: Override for the type's default sound
            url: Optional supplementary URL
            url_title: Title for the supplementary URL
            throttle: False when the caller applies its own throttling

        Returns:
            True if the push channel confirmed delivery
        """
        alert_type = AlertType(alert_type)

        if not self._is_enabled(alert_type):
            logger.debug(f"Alert type {alert_type.value} disabled, skipping")
            return False

        resolved_priority = AlertPriority(
            priority if priority is not None else alert_type.default_priority
        )
        resolved_sound = sound or alert_type.default_sound
        body = build_alert_message(message, context)

        if throttle and alert_type.should_throttle and self.is_throttled(alert_type):
            logger.info(f"Alert {alert_type.value} throttled: {message}")
            return False

        logger.log(
            LOG_LEVELS.get(resolved_priority, logging.WARNING),
            f"[{alert_type.display_name}] {body}",
        )
        try:
            capture_alert(
                message=f"{alert_type.display_name}: {message}",
                level=SENTRY_LEVELS.get(resolved_priority, "warning"),
                alert_type=alert_type.value,
                extra_data=context,
            )
        except Exception as e:
            logger.error(f"Failed to mirror {alert_type.value} alert to Sentry: {e}")

        if getattr(settings, "ALERTS_LOG_ONLY", False):
            self._record_throttle(alert_type)
            return False

        token = getattr(settings, "PUSHOVER_TOKEN", "")
        user = getattr(settings, "PUSHOVER_USER", "")
        if not token or not user:
            logger.warning("Pushover credentials not configured, alert not sent")
            return False

        pushover_message = PushoverMessage(
            token=token,
            user=user,
            message=body,
            title=alert_type.display_name,
            priority=resolved_priority,
            sound=resolved_sound,
            url=url,
            url_title=url_title,
            timestamp=int(timezone.now().timestamp()),
        )

        try:
            delivered = self.channel.send(pushover_message.to_payload())
        except Exception as e:
            logger.error(f"Failed to send {alert_type.value} alert: {e}")
            delivered = False

        self._record_throttle(alert_type)
        return delivered

    def is_throttled(self, alert_type: AlertType) -> bool:
        """
        Check for a live throttle record.

        An unreachable cache counts as not throttled, so the alert is
        sent.
        """
        try:
            return self.cache.get(throttle_key(alert_type)) is not None
        except Exception as e:
            logger.error(f"Alert throttle lookup failed for {alert_type.value}: {e}")
            return False

    def _record_throttle(self, alert_type: AlertType) -> None:
        if not alert_type.should_throttle:
            return
        try:
            self.cache.set(
                throttle_key(alert_type),
                {
                    "alert_type": alert_type.value,
                    "last_sent_at": timezone.now().isoformat(),
                },
                alert_type.throttle_minutes * 60,
            )
        except Exception as e:
            logger.error(f"Failed to record alert throttle for {alert_type.value}: {e}")

    def _is_enabled(self, alert_type: AlertType) -> bool:
        if not getattr(settings, "ALERTS_ENABLED", True):
            return False
        enabled_types = getattr(settings, "ALERTS_ENABLED_TYPES", None)
        if enabled_types:
            return alert_type.value in enabled_types
        return True

    # Convenience helpers

    def amazon_session_expired(self, message: str = None, context: Dict[str, Any] = None) -> bool:
        return self.send(
            AlertType.AMAZON_SESSION_EXPIRED,
            message or "Amazon session has expired. Product scraping is blocked until it is renewed.",
            context,
        )

    def amazon_captcha_detected(self, url: str, context: Dict[str, Any] = None) -> bool:
        return self.send(
            AlertType.AMAZON_SESSION_EXPIRED,
            "Amazon CAPTCHA detected while scraping product data.",
            {"url": url, **(context or {})},
        )

    def openai_quota_exceeded(self, message: str = None, context: Dict[str, Any] = None) -> bool:
        return self.send(
            AlertType.OPENAI_QUOTA_EXCEEDED,
            message or "AI analysis quota exceeded. Review analysis is failing.",
            context,
        )

    def openai_api_error(
        self, message: str, status_code: int = None, context: Dict[str, Any] = None
    ) -> bool:
        priority = AlertPriority.HIGH if status_code and status_code >= 500 else None
        details = dict(context or {})
        if status_code is not None:
            details["status_code"] = status_code
        return self.send(AlertType.OPENAI_API_ERROR, message, details, priority=priority)

    def system_error(
        self, message: str, exception: Exception = None, context: Dict[str, Any] = None
    ) -> bool:
        details = dict(context or {})
        if exception is not None:
            details.setdefault("exception", type(exception).__name__)
            details.setdefault("error", str(exception)[:200])
        return self.send(AlertType.SYSTEM_ERROR, message, details)

    def database_error(
        self, message: str, exception: Exception = None, context: Dict[str, Any] = None
    ) -> bool:
        details = dict(context or {})
        if exception is not None:
            details.setdefault("exception", type(exception).__name__)
        return self.send(AlertType.DATABASE_ERROR, message, details)

    def security_alert(self, message: str, context: Dict[str, Any] = None) -> bool:
        return self.send(AlertType.SECURITY_ALERT, message, context)

    def api_timeout(
        self, service: str, timeout_seconds: float = None, context: Dict[str, Any] = None
    ) -> bool:
        details = {"service": service, **(context or {})}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        return self.send(AlertType.API_TIMEOUT, f"{service} request timed out.", details)

    def connectivity_issue(
        self, service: str, error_message: str, context: Dict[str, Any] = None
    ) -> bool:
        return self.send(
            AlertType.CONNECTIVITY_ISSUE,
            f"Cannot reach {service}.",
            {"service": service, "error": error_message, **(context or {})},
        )

    def rate_limit_exceeded(self, service: str, context: Dict[str, Any] = None) -> bool:
        return self.send(
            AlertType.RATE_LIMIT_EXCEEDED,
            f"{service} rate limit exceeded.",
            {"service": service, **(context or {})},
        )

    def external_api_error(
        self,
        service: str,
        message: str,
        status_code: int = None,
        context: Dict[str, Any] = None,
    ) -> bool:
        details = {"service": service, **(context or {})}
        if status_code is not None:
            details["status_code"] = status_code
        return self.send(AlertType.EXTERNAL_API_ERROR, message, details)


_alert_dispatcher: Optional[AlertDispatcher] = None


def get_alert_dispatcher() -> AlertDispatcher:
    """
    Get the global alert dispatcher instance.

    Settings are read on every send, so the instance can be shared.
    """
    global _alert_dispatcher

    if _alert_dispatcher is None:
        _alert_dispatcher = AlertDispatcher()

    return _alert_dispatcher
