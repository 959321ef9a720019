"""
Pushover push notification channel.

PushoverMessage builds the form payload for the messages API;
PushoverChannel posts it with a small retry budget.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from analyzer.monitoring.alert_types import AlertPriority
from analyzer.services.ports import PushChannel

logger = logging.getLogger(__name__)

DEFAULT_EMERGENCY_RETRY = 30  # seconds between re-notifications
DEFAULT_EMERGENCY_EXPIRE = 3600  # stop re-notifying after one hour


@dataclass
class PushoverMessage:
    """One Pushover message."""

    token: str
    user: str
    message: str
    title: Optional[str] = None
    priority: int = AlertPriority.NORMAL
    sound: Optional[str] = None
    url: Optional[str] = None
    url_title: Optional[str] = None
    device: Optional[str] = None
    timestamp: Optional[int] = None
    html: bool = False
    retry: Optional[int] = None
    expire: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        """
        Build the API payload.

        Emergency priority requires retry and expire; defaults are
        applied when the caller did not set them.
        """
        payload: Dict[str, Any] = {
            "token": self.token,
            "user": self.user,
            "message": self.message,
            "priority": int(self.priority),
        }

        if self.title:
            payload["title"] = self.title
        if self.url:
            payload["url"] = self.url
            if self.url_title:
                payload["url_title"] = self.url_title
        if self.sound:
            payload["sound"] = self.sound
        if self.device:
            payload["device"] = self.device
        if self.timestamp:
            payload["timestamp"] = self.timestamp
        if self.html:
            payload["html"] = 1

        if int(self.priority) == AlertPriority.EMERGENCY:
            payload["retry"] = self.retry or DEFAULT_EMERGENCY_RETRY
            payload["expire"] = self.expire or DEFAULT_EMERGENCY_EXPIRE

        return payload


class PushoverChannel(PushChannel):
    """
    Sends messages to the Pushover messages API.

    Retries connection errors and 5xx responses; 4xx responses are
    final (bad token, bad user, invalid payload).
    """

    API_URL = "https://api.pushover.net/1/messages.json"
    DEFAULT_TIMEOUT = 30
    MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 1.0  # seconds

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_BASE_DELAY,
    ):
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def send(self, payload: Dict[str, Any]) -> bool:
        last_error: Optional[str] = None

        for attempt in range(self.max_attempts):
            try:
                response = requests.post(self.API_URL, data=payload, timeout=self.timeout)

                if response.status_code < 500:
                    return self._is_delivered(response)

                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                logger.warning(
                    "Pushover error on attempt %d/%d: %s",
                    attempt + 1,
                    self.max_attempts,
                    last_error,
                )

            except requests.RequestException as e:
                last_error = f"Request failed: {e}"
                logger.warning(
                    "Pushover request failed on attempt %d/%d: %s",
                    attempt + 1,
                    self.max_attempts,
                    e,
                )

            if attempt < self.max_attempts - 1 and self.retry_delay:
                time.sleep(self.retry_delay * (2 ** attempt))

        logger.error(f"Pushover delivery failed after {self.max_attempts} attempts: {last_error}")
        return False

    def _is_delivered(self, response: requests.Response) -> bool:
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 200 and body.get("status") == 1:
            return True

        logger.error(
            f"Pushover rejected message: HTTP {response.status_code} "
            f"errors={body.get('errors')}"
        )
        return False
