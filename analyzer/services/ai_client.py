"""
HTTP client for the AI Analysis Service.

The service scores reviews for authenticity and analyses pricing; the
LLM calls happen there. This client handles:
- Bearer token authentication
- Retry with exponential backoff on 5xx, timeouts and connection errors
- Quota exhaustion (HTTP 429) as a distinct, non-retried error
- Operator alerts for quota, outage and connectivity problems
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

from analyzer.exceptions import ExternalServiceError
from analyzer.monitoring.alerts import get_alert_dispatcher

logger = logging.getLogger(__name__)


class AIClientError(ExternalServiceError):
    """Error from AI Analysis Service operations."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message, service="ai", status_code=status_code)


class AIQuotaExceededError(AIClientError):
    """The AI provider quota is exhausted; retrying will not help."""

    pass


class AnalysisAIClient:
    """
    Synchronous client for AI Analysis Service endpoints.

    Usage:
        client = AnalysisAIClient()
        result = client.analyze_reviews("B0TEST1234", reviews)
        scores = result["detailed_scores"]
    """

    MAX_RETRIES = 3
    RETRY_BASE_DELAY = 1.0  # seconds
    RETRY_CODES = {500, 502, 503, 504}  # HTTP codes to retry

    REVIEWS_ENDPOINT = "/api/v1/reviews/analyze/"
    PRICING_ENDPOINT = "/api/v1/pricing/analyze/"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_BASE_DELAY,
    ):
        """
        Initialize the AI client.

        Args:
            base_url: Service URL (defaults to settings.AI_ANALYSIS_SERVICE_URL)
            api_key: Bearer token (defaults to settings.AI_ANALYSIS_SERVICE_TOKEN)
            timeout: Request timeout in seconds
            max_retries: Maximum attempts for transient failures
            retry_delay: Base delay for exponential backoff
        """
        self.base_url = (
            base_url or getattr(settings, "AI_ANALYSIS_SERVICE_URL", "http://localhost:8000")
        ).rstrip("/")
        self.api_key = api_key or getattr(settings, "AI_ANALYSIS_SERVICE_TOKEN", "")
        self.timeout = timeout or getattr(settings, "AI_ANALYSIS_SERVICE_TIMEOUT", 120)
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def analyze_reviews(self, asin: str, reviews: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Score reviews for authenticity.

        Returns:
            {"detailed_scores": {review_id: 0-100}, "summary": str, ...}
        """
        payload = {
            "asin": asin,
            "reviews": [
                {
                    "id": review.get("id"),
                    "rating": review.get("rating"),
                    "title": review.get("title", ""),
                    "text": review.get("text", ""),
                    "verified_purchase": review.get("meta_data", {}).get("verified_purchase"),
                    "vine_review": review.get("meta_data", {}).get("vine_review"),
                }
                for review in reviews
            ],
        }
        result = self._post(self.REVIEWS_ENDPOINT, payload)

        if not isinstance(result.get("detailed_scores"), dict):
            raise AIClientError("AI service response missing detailed_scores")

        return result

    def analyze_pricing(self, product_data: Dict[str, Any]) -> Dict[str, Any]:
        """Run price analysis for a product summary."""
        return self._post(self.PRICING_ENDPOINT, product_data)

    def _get_headers(self) -> Dict[str, str]:
        """
        Build request headers with Bearer token authentication.

        Returns:
            Dictionary of HTTP headers
        """
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        return headers

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send request with retry logic and exponential backoff.

        Raises:
            AIQuotaExceededError: On quota exhaustion
            AIClientError: On client errors or when all retries are exhausted
        """
        url = f"{self.base_url}{path}"
        alerts = get_alert_dispatcher()
        last_error: Optional[str] = None
        last_status: Optional[int] = None
        last_failure = "server"

        for attempt in range(self.max_retries):
            try:
                response = requests.post(
                    url, json=payload, headers=self._get_headers(), timeout=self.timeout
                )

            except requests.Timeout as e:
                last_error = f"Request timed out after {self.timeout}s: {e}"
                last_failure = "timeout"
                logger.warning(
                    "Timeout on attempt %d/%d: %s", attempt + 1, self.max_retries, last_error
                )

            except requests.ConnectionError as e:
                last_error = f"Connection error: {e}"
                last_failure = "connection"
                logger.warning(
                    "Connection error on attempt %d/%d: %s", attempt + 1, self.max_retries, last_error
                )

            else:
                if response.status_code == 429:
                    body = response.text[:500]
                    if "quota" in body.lower():
                        alerts.openai_quota_exceeded(context={"endpoint": path})
                        raise AIQuotaExceededError("AI quota exceeded", status_code=429)
                    alerts.rate_limit_exceeded("AI Analysis Service", {"endpoint": path})
                    raise AIClientError("AI service rate limited", status_code=429)

                if response.status_code in self.RETRY_CODES:
                    last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                    last_status = response.status_code
                    last_failure = "server"
                    logger.warning(
                        "Retryable error on attempt %d/%d: %s",
                        attempt + 1,
                        self.max_retries,
                        last_error,
                    )

                elif response.status_code >= 400:
                    message = f"AI service rejected request: HTTP {response.status_code}"
                    alerts.openai_api_error(
                        message, status_code=response.status_code, context={"endpoint": path}
                    )
                    raise AIClientError(message, status_code=response.status_code)

                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise AIClientError("AI service returned invalid JSON") from e

            # Apply exponential backoff before retry
            if attempt < self.max_retries - 1 and self.retry_delay:
                delay = self.retry_delay * (2 ** attempt)
                logger.debug("Waiting %.1fs before retry %d", delay, attempt + 2)
                time.sleep(delay)

        if last_failure == "timeout":
            alerts.api_timeout("AI Analysis Service", self.timeout, {"endpoint": path})
        elif last_failure == "connection":
            alerts.connectivity_issue("AI Analysis Service", last_error or "", {"endpoint": path})
        else:
            alerts.openai_api_error(
                f"AI service unavailable after {self.max_retries} attempts",
                status_code=last_status,
                context={"endpoint": path},
            )

        raise AIClientError(
            f"Max retries ({self.max_retries}) exceeded: {last_error}", status_code=last_status
        )
