"""
Operator alert catalogue.

Each alert type carries fixed metadata: display name, default priority,
optional Pushover sound and throttle window. Types without a throttle
window are sent every time.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class AlertPriority(IntEnum):
    """Pushover message priorities."""

    LOWEST = -2
    LOW = -1
    NORMAL = 0
    HIGH = 1
    EMERGENCY = 2


@dataclass(frozen=True)
class AlertTypeInfo:
    """Static metadata for one alert type."""

    display_name: str
    priority: AlertPriority
    sound: Optional[str] = None
    throttle_minutes: Optional[int] = None


class AlertType(Enum):
    """Types of operator alerts."""

    AMAZON_SESSION_EXPIRED = "amazon_session_expired"
    OPENAI_QUOTA_EXCEEDED = "openai_quota_exceeded"
    OPENAI_API_ERROR = "openai_api_error"
    AMAZON_API_ERROR = "amazon_api_error"
    API_TIMEOUT = "api_timeout"
    CONNECTIVITY_ISSUE = "connectivity_issue"
    SYSTEM_ERROR = "system_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    DATABASE_ERROR = "database_error"
    EXTERNAL_API_ERROR = "external_api_error"
    SECURITY_ALERT = "security_alert"
    PERFORMANCE_ALERT = "performance_alert"

    @property
    def info(self) -> AlertTypeInfo:
        return ALERT_TYPE_INFO[self]

    @property
    def display_name(self) -> str:
        return self.info.display_name

    @property
    def default_priority(self) -> AlertPriority:
        return self.info.priority

    @property
    def default_sound(self) -> Optional[str]:
        return self.info.sound

    @property
    def should_throttle(self) -> bool:
        return self.info.throttle_minutes is not None

    @property
    def throttle_minutes(self) -> Optional[int]:
        return self.info.throttle_minutes


ALERT_TYPE_INFO = {
    AlertType.AMAZON_SESSION_EXPIRED: AlertTypeInfo(
        "Amazon Session Expired", AlertPriority.HIGH, sound="pushover", throttle_minutes=60
    ),
    AlertType.OPENAI_QUOTA_EXCEEDED: AlertTypeInfo(
        "OpenAI Quota Exceeded", AlertPriority.HIGH, sound="cashregister", throttle_minutes=60
    ),
    AlertType.OPENAI_API_ERROR: AlertTypeInfo("OpenAI API Error", AlertPriority.NORMAL),
    AlertType.AMAZON_API_ERROR: AlertTypeInfo("Amazon API Error", AlertPriority.NORMAL),
    AlertType.API_TIMEOUT: AlertTypeInfo(
        "API Timeout", AlertPriority.NORMAL, throttle_minutes=15
    ),
    AlertType.CONNECTIVITY_ISSUE: AlertTypeInfo(
        "Connectivity Issue", AlertPriority.HIGH, throttle_minutes=30
    ),
    AlertType.SYSTEM_ERROR: AlertTypeInfo("System Error", AlertPriority.HIGH),
    AlertType.RATE_LIMIT_EXCEEDED: AlertTypeInfo(
        "Rate Limit Exceeded", AlertPriority.NORMAL, throttle_minutes=30
    ),
    AlertType.DATABASE_ERROR: AlertTypeInfo(
        "Database Error", AlertPriority.EMERGENCY, sound="alien"
    ),
    AlertType.EXTERNAL_API_ERROR: AlertTypeInfo("External API Error", AlertPriority.NORMAL),
    AlertType.SECURITY_ALERT: AlertTypeInfo(
        "Security Alert", AlertPriority.EMERGENCY, sound="siren"
    ),
    AlertType.PERFORMANCE_ALERT: AlertTypeInfo(
        "Performance Alert", AlertPriority.NORMAL, throttle_minutes=15
    ),
}
