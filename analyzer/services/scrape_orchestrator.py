"""
Scrape job chain: Trigger -> Poll -> Process.

Each phase hands off to the next through a JobScheduler instead of
looping in-process, so at most one job per (asin, job_id) is in flight.
Poll carries its own attempt counter; the chain stops after
MAX_POLL_ATTEMPTS polls spaced POLL_DELAY seconds apart. Provider failures
go to the error-rate monitor, which decides when operators are paged.
"""

import logging
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from analyzer.exceptions import ExternalServiceError, ScrapeTimeoutError
from analyzer.models import Product, ProductStatus
from analyzer.monitoring.error_rate import (
    SERVICE_BRIGHTDATA_SCRAPER,
    ErrorRateMonitor,
    get_error_rate_monitor,
)
from analyzer.services.amazon_urls import build_product_url
from analyzer.services.ports import JobScheduler, ScraperService

logger = logging.getLogger(__name__)

POLL_DELAY = 30  # seconds between polls
MAX_POLL_ATTEMPTS = 10

STATUS_READY = "ready"
STATUS_RUNNING = "running"
FAILED_STATUSES = ("failed", "error")


def save_scrape_results(
    asin: str,
    country: str,
    payload: Dict[str, Any],
    product_url: Optional[str] = None,
) -> Product:
    """
    Upsert a product from a canonical scrape payload.

    Title and image are only taken when both arrived in this pass;
    otherwise stored values are left alone. have_product_data is derived
    from the post-update state when the record is saved.
    """
    reviews = payload.get("reviews") or []

    with transaction.atomic():
        product, created = Product.objects.select_for_update().get_or_create(
            asin=asin,
            country=country,
            defaults={
                "status": ProductStatus.PENDING_ANALYSIS,
                "product_url": product_url or build_product_url(asin, country),
            },
        )

        product.reviews = reviews
        product.product_description = payload.get("description") or ""
        product.total_reviews_on_amazon = payload.get("total_reviews") or len(reviews)

        title = payload.get("product_name")
        image_url = payload.get("product_image_url")
        if title and image_url:
            product.product_title = title
            product.product_image_url = image_url
        else:
            logger.warning(
                f"Partial product metadata for {asin}: "
                f"title={'yes' if title else 'no'} image={'yes' if image_url else 'no'}"
            )

        product.save()

    logger.info(
        f"{'Created' if created else 'Updated'} product {asin} ({country}) "
        f"with {len(reviews)} review(s), have_product_data={product.have_product_data}"
    )
    return product


class ScrapeJobOrchestrator:
    """
    Drives one provider job from trigger to persisted reviews.

    Usage:
        orchestrator = ScrapeJobOrchestrator(scraper, scheduler)
        orchestrator.trigger("B0TEST1234", "us")
        # later, from the scheduled continuation:
        orchestrator.poll("B0TEST1234", "us", job_id, attempt=1)
    """

    def __init__(
        self,
        scraper: ScraperService,
        scheduler: JobScheduler,
        monitor: Optional[ErrorRateMonitor] = None,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        poll_delay: int = POLL_DELAY,
    ):
        self.scraper = scraper
        self.scheduler = scheduler
        self.monitor = monitor or get_error_rate_monitor()
        self.max_poll_attempts = max_poll_attempts
        self.poll_delay = poll_delay

    def trigger(self, asin: str, country: str) -> str:
        """
        Start a provider job and schedule the first poll.

        Raises:
            ExternalServiceError: If the provider returned no job id or failed
        """
        url = build_product_url(asin, country)

        try:
            job_id = self.scraper.trigger([url])
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError(
                f"Scrape trigger failed for {asin}: {e}", service="brightdata"
            ) from e

        if not job_id:
            raise ExternalServiceError(
                f"Scrape trigger returned no job id for {asin}", service="brightdata"
            )

        logger.info(f"Scrape job {job_id} started for {asin} ({country})")
        self.scheduler.schedule_poll(asin, country, job_id, 1, self.poll_delay)
        return job_id

    def poll(self, asin: str, country: str, job_id: str, attempt: int) -> str:
        """
        Check provider progress and schedule the next phase.

        Returns:
            The provider status observed

        Raises:
            ExternalServiceError: Provider reported failed/error
            ScrapeTimeoutError: Still running at the last attempt, or unknown status
        """
        progress = self.scraper.get_progress(job_id)
        status = progress.get("status", "unknown")

        logger.info(
            f"Scrape job {job_id} for {asin}: status={status} "
            f"rows={progress.get('total_rows', 0)} attempt {attempt}/{self.max_poll_attempts}"
        )

        if status == STATUS_READY:
            self.monitor.record_recovery(SERVICE_BRIGHTDATA_SCRAPER, "POLLING_TIMEOUT")
            self.scheduler.schedule_process(asin, country, job_id)
            return status

        if status in FAILED_STATUSES:
            self.monitor.record_failure(
                SERVICE_BRIGHTDATA_SCRAPER,
                "SCRAPING_FAILED",
                f"Scrape job {job_id} reported {status}",
                {"asin": asin, "job_id": job_id, "status": status},
            )
            raise ExternalServiceError(
                f"Scrape job {job_id} failed with status {status}", service="brightdata"
            )

        if status == STATUS_RUNNING and attempt < self.max_poll_attempts:
            self.scheduler.schedule_poll(asin, country, job_id, attempt + 1, self.poll_delay)
            return status

        cancelled = self.scraper.cancel_job(job_id)
        if cancelled:
            logger.info(f"Cancelled stale scrape job {job_id}")

        self.monitor.record_failure(
            SERVICE_BRIGHTDATA_SCRAPER,
            "POLLING_TIMEOUT",
            f"Job polling stopped after {attempt} attempts with status {status}, "
            f"cancellation {'successful' if cancelled else 'failed'}",
            {
                "asin": asin,
                "job_id": job_id,
                "status": status,
                "timeout_seconds": self.max_poll_attempts * self.poll_delay,
            },
        )

        raise ScrapeTimeoutError(
            f"Scrape job {job_id} timeout or unknown status after {attempt} attempts. "
            f"Final status: {status}",
            job_id=job_id,
            attempts=attempt,
        )

    def process(self, asin: str, country: str, job_id: str) -> Product:
        """
        Download, transform and persist provider results.

        Raises:
            ExternalServiceError: If the provider returned no records
        """
        records = self.scraper.fetch_data(job_id)
        if not records:
            self.monitor.record_failure(
                SERVICE_BRIGHTDATA_SCRAPER,
                "SCRAPING_FAILED",
                f"No results returned from scrape job {job_id}",
                {"asin": asin, "job_id": job_id},
            )
            raise ExternalServiceError(
                f"No results returned from scrape job {job_id}", service="brightdata"
            )

        payload = self.scraper.transform(records, asin)
        product = save_scrape_results(asin, country, payload)
        self.monitor.record_recovery(SERVICE_BRIGHTDATA_SCRAPER, "SCRAPING_FAILED")

        logger.info(
            f"Processed scrape job {job_id} for {asin}: "
            f"{product.review_count} review(s) at {timezone.now().isoformat()}"
        )
        return product
