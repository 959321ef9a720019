"""
Tests for operator alert dispatch, throttling and the Pushover channel.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
import responses
from django.core.cache import cache
from django.test import override_settings

from analyzer.monitoring.alert_types import AlertPriority, AlertType
from analyzer.monitoring.alerts import (
    AlertDispatcher,
    build_alert_message,
    format_context,
    throttle_key,
)
from analyzer.monitoring.pushover import PushoverChannel, PushoverMessage
from analyzer.tests.conftest import BrokenCache, RecordingChannel


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def dispatcher(channel):
    return AlertDispatcher(channel=channel)


class TestAlertTypes:
    def test_throttled_types(self):
        assert AlertType.API_TIMEOUT.throttle_minutes == 15
        assert AlertType.CONNECTIVITY_ISSUE.throttle_minutes == 30
        assert AlertType.AMAZON_SESSION_EXPIRED.throttle_minutes == 60
        assert AlertType.OPENAI_QUOTA_EXCEEDED.should_throttle

    def test_unthrottled_types(self):
        assert not AlertType.SYSTEM_ERROR.should_throttle
        assert not AlertType.EXTERNAL_API_ERROR.should_throttle
        assert AlertType.SECURITY_ALERT.throttle_minutes is None

    def test_priorities(self):
        assert AlertType.DATABASE_ERROR.default_priority == AlertPriority.EMERGENCY
        assert AlertType.SYSTEM_ERROR.default_priority == AlertPriority.HIGH
        assert AlertType.API_TIMEOUT.default_priority == AlertPriority.NORMAL


class TestContextFormatting:
    def test_sensitive_keys_dropped(self):
        text = format_context({"asin": "B0TEST1234", "token": "abc", "password": "x", "trace": "..."})
        assert text == "Asin: B0TEST1234"

    def test_value_rendering(self):
        text = format_context({"retry": True, "hosts": ["a", "b"], "data": {"k": 1}})
        lines = text.splitlines()
        assert lines[0] == "Retry: Yes"
        assert lines[1] == "Hosts: a, b"
        assert lines[2] == 'Data: {"k": 1}'

    def test_at_most_five_lines(self):
        context = {f"key_{i}": i for i in range(10)}
        assert len(format_context(context).splitlines()) == 5

    def test_message_without_context(self):
        assert build_alert_message("Plain text") == "Plain text"
        assert build_alert_message("Text", {"service": "AI"}) == "Text\n\nService: AI"


class TestThrottling:
    """A burst of throttled alerts produces a single push."""

    def test_burst_produces_one_push(self, dispatcher, channel):
        results = [
            dispatcher.api_timeout("BrightData", 300, {"job_id": f"job-{i}"})
            for i in range(5)
        ]

        assert results == [True, False, False, False, False]
        assert len(channel.payloads) == 1
        assert cache.get(throttle_key(AlertType.API_TIMEOUT)) is not None

    def test_unthrottled_type_always_sent(self, dispatcher, channel):
        for _ in range(3):
            assert dispatcher.system_error("Pipeline failed") is True

        assert len(channel.payloads) == 3

    def test_throttle_is_per_type(self, dispatcher, channel):
        dispatcher.api_timeout("BrightData")
        dispatcher.connectivity_issue("BrightData", "connection refused")

        assert len(channel.payloads) == 2

    def test_caller_throttled_send_skips_type_throttle(self, dispatcher, channel):
        dispatcher.api_timeout("BrightData")

        assert dispatcher.send(AlertType.API_TIMEOUT, "Escalated", throttle=False) is True
        assert len(channel.payloads) == 2

    def test_throttle_recorded_even_when_delivery_fails(self):
        dispatcher = AlertDispatcher(channel=RecordingChannel(delivered=False))

        assert dispatcher.rate_limit_exceeded("BrightData") is False
        assert dispatcher.is_throttled(AlertType.RATE_LIMIT_EXCEEDED)

    def test_throttle_ttl(self, channel):
        mock_cache = MagicMock()
        mock_cache.get.return_value = None
        dispatcher = AlertDispatcher(channel=channel, cache_backend=mock_cache)

        dispatcher.connectivity_issue("AI Analysis Service", "refused")

        key, record, ttl = mock_cache.set.call_args[0]
        assert key == "alert_throttle:connectivity_issue"
        assert record["alert_type"] == "connectivity_issue"
        assert ttl == 30 * 60


class TestCacheOutage:
    """Alerts still go out when the throttle cache is down."""

    def test_throttled_alert_sent_when_cache_down(self, channel):
        dispatcher = AlertDispatcher(channel=channel, cache_backend=BrokenCache())

        assert dispatcher.api_timeout("BrightData", 300) is True
        assert len(channel.payloads) == 1
        assert channel.payloads[0]["title"] == "API Timeout"

    def test_is_throttled_false_when_cache_down(self, channel):
        dispatcher = AlertDispatcher(channel=channel, cache_backend=BrokenCache())

        assert dispatcher.is_throttled(AlertType.CONNECTIVITY_ISSUE) is False

    @override_settings(ALERTS_LOG_ONLY=True)
    def test_log_only_with_cache_down(self, channel):
        dispatcher = AlertDispatcher(channel=channel, cache_backend=BrokenCache())

        assert dispatcher.connectivity_issue("BrightData", "refused") is False
        assert channel.payloads == []

    def test_sentry_mirror_failure_contained(self, dispatcher, channel):
        with patch(
            "analyzer.monitoring.alerts.capture_alert", side_effect=RuntimeError("sentry down")
        ):
            assert dispatcher.system_error("boom") is True

        assert len(channel.payloads) == 1


class TestDispatchModes:
    @override_settings(ALERTS_ENABLED=False)
    def test_disabled(self, dispatcher, channel):
        assert dispatcher.system_error("boom") is False
        assert channel.payloads == []

    @override_settings(ALERTS_ENABLED_TYPES=["database_error"])
    def test_type_allow_list(self, dispatcher, channel):
        assert dispatcher.system_error("boom") is False
        assert dispatcher.database_error("db down") is True
        assert len(channel.payloads) == 1

    @override_settings(ALERTS_LOG_ONLY=True)
    def test_log_only_records_throttle(self, dispatcher, channel):
        with patch("analyzer.monitoring.alerts.capture_alert") as mock_capture:
            assert dispatcher.api_timeout("BrightData") is False

        assert channel.payloads == []
        mock_capture.assert_called_once()
        assert dispatcher.is_throttled(AlertType.API_TIMEOUT)

    @override_settings(PUSHOVER_TOKEN="")
    def test_missing_credentials(self, dispatcher, channel):
        assert dispatcher.system_error("boom") is False
        assert channel.payloads == []

    def test_channel_exception_is_contained(self, dispatcher):
        with patch.object(dispatcher.channel, "send", side_effect=RuntimeError("socket")):
            assert dispatcher.system_error("boom") is False

    def test_payload_contents(self, dispatcher, channel):
        dispatcher.database_error("Connection pool exhausted", context={"host": "db-1"})

        payload = channel.payloads[0]
        assert payload["token"] == "test-pushover-token"
        assert payload["user"] == "test-pushover-user"
        assert payload["title"] == "Database Error"
        assert payload["priority"] == AlertPriority.EMERGENCY
        assert payload["sound"] == "alien"
        assert payload["retry"] == 30
        assert payload["expire"] == 3600
        assert "Host: db-1" in payload["message"]

    def test_openai_server_error_raises_priority(self, dispatcher, channel):
        dispatcher.openai_api_error("AI down", status_code=503)
        dispatcher.openai_api_error("Bad request", status_code=400)

        assert channel.payloads[0]["priority"] == AlertPriority.HIGH
        assert channel.payloads[1]["priority"] == AlertPriority.NORMAL

    def test_captcha_uses_session_expired_type(self, dispatcher, channel):
        dispatcher.amazon_captcha_detected("https://www.amazon.com/dp/B0TEST1234/")

        assert channel.payloads[0]["title"] == "Amazon Session Expired"
        assert dispatcher.is_throttled(AlertType.AMAZON_SESSION_EXPIRED)


class TestPushoverMessage:
    def test_minimal_payload(self):
        payload = PushoverMessage(token="t", user="u", message="hello").to_payload()
        assert payload == {"token": "t", "user": "u", "message": "hello", "priority": 0}

    def test_url_title_requires_url(self):
        payload = PushoverMessage(token="t", user="u", message="m", url_title="Open").to_payload()
        assert "url_title" not in payload

    def test_emergency_defaults(self):
        payload = PushoverMessage(
            token="t", user="u", message="m", priority=AlertPriority.EMERGENCY, retry=60
        ).to_payload()
        assert payload["retry"] == 60
        assert payload["expire"] == 3600

    def test_html_flag(self):
        payload = PushoverMessage(token="t", user="u", message="<b>m</b>", html=True).to_payload()
        assert payload["html"] == 1


class TestPushoverChannel:
    @responses.activate
    def test_delivered(self):
        responses.add(
            responses.POST, PushoverChannel.API_URL, json={"status": 1, "request": "abc"}, status=200
        )

        assert PushoverChannel(retry_delay=0).send({"token": "t", "user": "u", "message": "m"}) is True
        assert len(responses.calls) == 1

    @responses.activate
    def test_retries_server_errors(self):
        responses.add(responses.POST, PushoverChannel.API_URL, status=503)
        responses.add(responses.POST, PushoverChannel.API_URL, json={"status": 1}, status=200)

        assert PushoverChannel(retry_delay=0).send({"message": "m"}) is True
        assert len(responses.calls) == 2

    @responses.activate
    def test_client_error_not_retried(self):
        responses.add(
            responses.POST,
            PushoverChannel.API_URL,
            json={"status": 0, "errors": ["user identifier is invalid"]},
            status=400,
        )

        assert PushoverChannel(retry_delay=0).send({"message": "m"}) is False
        assert len(responses.calls) == 1

    @responses.activate
    def test_gives_up_after_max_attempts(self):
        responses.add(
            responses.POST, PushoverChannel.API_URL, body=requests.ConnectionError("refused")
        )

        assert PushoverChannel(max_attempts=3, retry_delay=0).send({"message": "m"}) is False
        assert len(responses.calls) == 3
