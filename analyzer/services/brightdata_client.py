"""
BrightData Client - HTTP client for the BrightData datasets API.

Drives asynchronous Amazon review collection:
- trigger: start a snapshot for product URLs
- get_progress: snapshot status (ready, running, failed, ...)
- fetch_data: download snapshot records
- transform: map records to the canonical review payload
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import requests
from django.conf import settings

from analyzer.monitoring.error_rate import SERVICE_BRIGHTDATA_API, get_error_rate_monitor
from analyzer.services.ports import ScraperService

logger = logging.getLogger(__name__)

UNKNOWN_PROGRESS = {"status": "unknown", "total_rows": 0}


class BrightDataScraper(ScraperService):
    """
    Wrapper for the BrightData datasets v3 API.

    Usage:
        scraper = BrightDataScraper()
        job_id = scraper.trigger(["https://www.amazon.com/dp/B0TEST1234/"])
        progress = scraper.get_progress(job_id)
        if progress["status"] == "ready":
            payload = scraper.transform(scraper.fetch_data(job_id), asin)
    """

    DEFAULT_TIMEOUT = 30
    DOWNLOAD_TIMEOUT = 120
    SNAPSHOT_BUILDING_RETRIES = 3
    SNAPSHOT_RETRY_DELAY = 5  # seconds

    def __init__(
        self,
        api_key: str = None,
        dataset_id: str = None,
        base_url: str = None,
        max_reviews: int = None,
        snapshot_retry_delay: float = SNAPSHOT_RETRY_DELAY,
    ):
        """
        Initialize BrightData client.

        Args:
            api_key: API token. If not provided, uses settings.BRIGHTDATA_SCRAPER_API
            dataset_id: Amazon reviews dataset id
            base_url: Datasets API base URL
            max_reviews: Maximum review records per product
            snapshot_retry_delay: Wait between downloads of a still-building snapshot

        Raises:
            ValueError: If no API key is configured
        """
        self.api_key = api_key or getattr(settings, "BRIGHTDATA_SCRAPER_API", None)

        if not self.api_key:
            raise ValueError("BRIGHTDATA_SCRAPER_API not configured")

        self.dataset_id = dataset_id or settings.BRIGHTDATA_DATASET_ID
        self.base_url = (base_url or settings.BRIGHTDATA_BASE_URL).rstrip("/")
        self.max_reviews = max_reviews or settings.BRIGHTDATA_MAX_REVIEWS
        self.snapshot_retry_delay = snapshot_retry_delay

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def trigger(self, urls: Sequence[str]) -> Optional[str]:
        """
        Start a collection job.

        Args:
            urls: Product page URLs

        Returns:
            Snapshot id, or None if the provider refused the job
        """
        params = {
            "dataset_id": self.dataset_id,
            "include_errors": "true",
            "limit_multiple_results": self.max_reviews,
        }

        monitor = get_error_rate_monitor()
        context = {"dataset_id": self.dataset_id, "urls_count": len(urls)}

        try:
            response = requests.post(
                f"{self.base_url}/trigger",
                params=params,
                json=[{"url": url} for url in urls],
                headers=self._get_headers(),
                timeout=self.DEFAULT_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error(f"BrightData trigger request failed: {e}")
            monitor.record_failure(SERVICE_BRIGHTDATA_API, "JOB_TRIGGER_FAILED", str(e), context, e)
            return None

        if response.status_code != 200:
            body = response.text[:500]
            logger.error(f"BrightData trigger failed: HTTP {response.status_code} {body}")
            if response.status_code == 429 and "running jobs" in body.lower():
                monitor.record_failure(
                    SERVICE_BRIGHTDATA_API,
                    "RATE_LIMIT_EXCEEDED",
                    "Too many running jobs (100+ limit reached)",
                    {"status_code": 429, "response": body[:200], **context},
                )
            else:
                monitor.record_failure(
                    SERVICE_BRIGHTDATA_API,
                    "JOB_TRIGGER_FAILED",
                    f"HTTP {response.status_code}",
                    {"status_code": response.status_code, **context},
                )
            return None

        try:
            snapshot_id = response.json().get("snapshot_id")
        except ValueError:
            snapshot_id = None

        if not snapshot_id:
            logger.error(f"BrightData trigger returned no snapshot id: {response.text[:200]}")
            monitor.record_failure(
                SERVICE_BRIGHTDATA_API, "JOB_TRIGGER_FAILED", "No snapshot id returned", context
            )
            return None

        monitor.record_recovery(SERVICE_BRIGHTDATA_API, "JOB_TRIGGER_FAILED")
        logger.info(f"BrightData job {snapshot_id} triggered for {len(urls)} URL(s)")
        return snapshot_id

    def get_progress(self, job_id: str) -> Dict[str, Any]:
        """
        Snapshot status.

        Returns:
            {"status": ..., "total_rows": ...}; status "unknown" on any error
        """
        try:
            response = requests.get(
                f"{self.base_url}/progress/{job_id}",
                headers=self._get_headers(),
                timeout=self.DEFAULT_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.warning(f"BrightData progress check failed for {job_id}: {e}")
            get_error_rate_monitor().record_failure(
                SERVICE_BRIGHTDATA_API, "POLLING_FAILED", str(e), {"job_id": job_id}, e
            )
            return dict(UNKNOWN_PROGRESS)

        if response.status_code != 200:
            logger.warning(
                f"BrightData progress check for {job_id} returned HTTP {response.status_code}"
            )
            get_error_rate_monitor().record_failure(
                SERVICE_BRIGHTDATA_API,
                "POLLING_FAILED",
                f"HTTP {response.status_code}",
                {"job_id": job_id, "status_code": response.status_code},
            )
            return dict(UNKNOWN_PROGRESS)

        get_error_rate_monitor().record_recovery(SERVICE_BRIGHTDATA_API, "POLLING_FAILED")

        try:
            data = response.json()
        except ValueError:
            return dict(UNKNOWN_PROGRESS)

        return {
            "status": data.get("status", "unknown"),
            "total_rows": int(data.get("records") or 0),
        }

    def fetch_data(self, job_id: str) -> List[Dict[str, Any]]:
        """
        Download snapshot records.

        A 202 means the snapshot is still being assembled; the download is
        retried a few times before giving up with an empty list.
        """
        url = f"{self.base_url}/snapshot/{job_id}"

        for attempt in range(self.SNAPSHOT_BUILDING_RETRIES + 1):
            try:
                response = requests.get(
                    url,
                    params={"format": "json"},
                    headers=self._get_headers(),
                    timeout=self.DOWNLOAD_TIMEOUT,
                )
            except requests.RequestException as e:
                logger.error(f"BrightData snapshot download failed for {job_id}: {e}")
                return []

            if response.status_code == 200:
                try:
                    data = response.json()
                except ValueError:
                    logger.error(f"BrightData snapshot {job_id} is not valid JSON")
                    return []
                return data if isinstance(data, list) else []

            if response.status_code == 202 and attempt < self.SNAPSHOT_BUILDING_RETRIES:
                logger.info(
                    f"BrightData snapshot {job_id} still building "
                    f"(attempt {attempt + 1}/{self.SNAPSHOT_BUILDING_RETRIES})"
                )
                if self.snapshot_retry_delay:
                    time.sleep(self.snapshot_retry_delay)
                continue

            logger.warning(
                f"BrightData snapshot {job_id} unavailable: HTTP {response.status_code}"
            )
            return []

        return []

    def transform(self, records: List[Dict[str, Any]], asin: str) -> Dict[str, Any]:
        """
        Map snapshot records to the canonical payload.

        Product fields come from the first record carrying a product name.
        Records without review id or text (provider error rows) are dropped.
        """
        product_name = None
        product_image_url = None
        total_reviews = None

        for record in records:
            if record.get("product_name"):
                product_name = record.get("product_name")
                product_image_url = record.get("product_image_url")
                total_reviews = record.get("product_rating_count")
                break

        reviews = []
        for record in records:
            if not record.get("review_id") or not record.get("review_text"):
                continue

            review = {
                "id": record["review_id"],
                "rating": record.get("rating"),
                "title": record.get("review_header") or "",
                "text": record["review_text"],
                "author": record.get("author_name") or "Anonymous",
                "date": record.get("review_posted_date"),
                "meta_data": {
                    "verified_purchase": bool(record.get("is_verified")),
                    "helpful_count": record.get("helpful_count") or 0,
                    "vine_review": bool(record.get("is_amazon_vine")),
                    "country": record.get("review_country"),
                    "badge": record.get("badge"),
                    "author_id": record.get("author_id"),
                    "author_link": record.get("author_link"),
                    "variant_asin": record.get("variant_asin"),
                    "variant_name": record.get("variant_name"),
                    "brand": record.get("brand"),
                    "timestamp": record.get("timestamp"),
                },
            }
            if record.get("review_images"):
                review["images"] = record["review_images"]
            if record.get("videos"):
                review["videos"] = record["videos"]

            reviews.append(review)

        logger.info(f"Transformed {len(reviews)} review(s) for {asin} from {len(records)} record(s)")

        return {
            "reviews": reviews,
            "description": "",
            "total_reviews": total_reviews,
            "product_name": product_name,
            "product_image_url": product_image_url,
        }

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a running snapshot; True when the provider confirms."""
        try:
            response = requests.post(
                f"{self.base_url}/snapshot/{job_id}/cancel",
                headers=self._get_headers(),
                timeout=self.DEFAULT_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.warning(f"BrightData cancel failed for {job_id}: {e}")
            return False

        cancelled = response.status_code == 200 and response.text.strip() == "OK"
        if not cancelled:
            logger.warning(
                f"BrightData cancel for {job_id} not confirmed: "
                f"HTTP {response.status_code} {response.text[:200]}"
            )
        return cancelled
