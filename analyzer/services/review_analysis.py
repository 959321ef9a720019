"""
Review analysis steps used by the analysis pipeline.

- check_product_exists: resolve the URL and report which steps are needed
- fetch_reviews: scrape reviews inline (trigger, bounded poll, download)
- analyze_with_llm: score reviews with the AI Analysis Service
- calculate_final_metrics: fake percentage, ratings and grade
"""

import logging
import time
from statistics import mean
from typing import Any, Dict, Optional

from django.conf import settings

from analyzer.exceptions import DataIntegrityError, ExternalServiceError, ScrapeTimeoutError
from analyzer.models import Product
from analyzer.monitoring.error_rate import SERVICE_BRIGHTDATA_SCRAPER, get_error_rate_monitor
from analyzer.services.ai_client import AnalysisAIClient
from analyzer.services.amazon_urls import build_product_url, parse_product_url
from analyzer.services.grading import build_explanation, calculate_grade
from analyzer.services.ports import AnalysisService, ScraperService
from analyzer.services.scrape_orchestrator import FAILED_STATUSES, STATUS_READY, save_scrape_results

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ReviewAnalysisService(AnalysisService):
    """
    Review analysis backed by BrightData and the AI Analysis Service.

    The scraper is created lazily so callers that never fetch reviews do
    not need BrightData credentials.
    """

    def __init__(
        self,
        scraper: ScraperService = None,
        ai_client: AnalysisAIClient = None,
        poll_interval: int = None,
        poll_attempts: int = None,
        fake_threshold: int = None,
    ):
        self._scraper = scraper
        self.ai_client = ai_client or AnalysisAIClient()
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.BRIGHTDATA_POLL_INTERVAL
        )
        self.poll_attempts = poll_attempts or settings.BRIGHTDATA_POLL_ATTEMPTS
        self.fake_threshold = fake_threshold or settings.ANALYZER_FAKE_SCORE_THRESHOLD

    @property
    def scraper(self) -> ScraperService:
        if self._scraper is None:
            from analyzer.services.brightdata_client import BrightDataScraper

            self._scraper = BrightDataScraper()
        return self._scraper

    def check_product_exists(self, product_url: str) -> Dict[str, Any]:
        """
        Resolve a product URL and report what work remains.

        Raises:
            InvalidProductUrlError: If the URL does not identify a product
        """
        asin, country, canonical_url = parse_product_url(product_url)
        product = Product.objects.filter(asin=asin, country=country).first()

        needs_fetching = product is None or not product.reviews
        needs_openai = needs_fetching or product.openai_result is None

        logger.info(
            f"Product {asin} ({country}): exists={product is not None} "
            f"needs_fetching={needs_fetching} needs_openai={needs_openai}"
        )

        return {
            "asin": asin,
            "country": country,
            "product_url": canonical_url,
            "exists": product is not None,
            "asin_data": product,
            "needs_fetching": needs_fetching,
            "needs_openai": needs_openai,
        }

    def fetch_reviews(self, asin: str, country: str, product_url: str) -> Product:
        """
        Scrape reviews while the caller waits.

        Polls with a fixed interval for at most poll_attempts checks; an
        "unknown" status is treated as transient here since the caller
        holds the whole budget.

        Raises:
            ExternalServiceError: Trigger failed, provider failed, or no results
            ScrapeTimeoutError: Provider did not finish in time
        """
        scraper = self.scraper
        monitor = get_error_rate_monitor()
        job_id = scraper.trigger([build_product_url(asin, country)])
        if not job_id:
            raise ExternalServiceError(
                f"Failed to fetch reviews for {asin}: scrape trigger returned no job id",
                service="brightdata",
            )

        for attempt in range(1, self.poll_attempts + 1):
            status = scraper.get_progress(job_id).get("status", "unknown")

            if status == STATUS_READY:
                break

            if status in FAILED_STATUSES:
                monitor.record_failure(
                    SERVICE_BRIGHTDATA_SCRAPER,
                    "SCRAPING_FAILED",
                    f"Scrape job {job_id} reported {status}",
                    {"asin": asin, "job_id": job_id, "status": status},
                )
                raise ExternalServiceError(
                    f"Failed to fetch reviews for {asin}: scrape job {job_id} {status}",
                    service="brightdata",
                )

            if attempt == self.poll_attempts:
                cancelled = scraper.cancel_job(job_id)
                monitor.record_failure(
                    SERVICE_BRIGHTDATA_SCRAPER,
                    "POLLING_TIMEOUT",
                    f"Job polling stopped after {attempt} checks with status {status}, "
                    f"cancellation {'successful' if cancelled else 'failed'}",
                    {
                        "asin": asin,
                        "job_id": job_id,
                        "status": status,
                        "timeout_seconds": self.poll_attempts * self.poll_interval,
                    },
                )
                raise ScrapeTimeoutError(
                    f"Failed to fetch reviews for {asin}: scrape job {job_id} "
                    f"still {status} after {attempt} checks",
                    job_id=job_id,
                    attempts=attempt,
                )

            if self.poll_interval:
                time.sleep(self.poll_interval)

        monitor.record_recovery(SERVICE_BRIGHTDATA_SCRAPER, "POLLING_TIMEOUT")

        records = scraper.fetch_data(job_id)
        if not records:
            monitor.record_failure(
                SERVICE_BRIGHTDATA_SCRAPER,
                "SCRAPING_FAILED",
                f"No results returned from scrape job {job_id}",
                {"asin": asin, "job_id": job_id},
            )
            raise ExternalServiceError(
                f"Failed to fetch reviews for {asin}: no results returned",
                service="brightdata",
            )

        payload = scraper.transform(records, asin)
        product = save_scrape_results(asin, country, payload, product_url=product_url)
        monitor.record_recovery(SERVICE_BRIGHTDATA_SCRAPER, "SCRAPING_FAILED")

        # Fresh reviews invalidate any earlier scoring
        if product.openai_result is not None:
            product.openai_result = None
            product.detailed_analysis = None
            product.save(update_fields=["openai_result", "detailed_analysis"])

        return product

    def analyze_with_llm(self, product: Product) -> Product:
        """
        Score the product's reviews.

        Raises:
            DataIntegrityError: If the product has no reviews
            AIClientError: On AI service failure
        """
        if not product.reviews:
            raise DataIntegrityError(f"No reviews found for analysis of {product.asin}")

        product.mark_analysis_processing()

        result = self.ai_client.analyze_reviews(product.asin, product.reviews)

        product.openai_result = result
        product.detailed_analysis = result.get("detailed_scores")
        product.save(update_fields=["openai_result", "detailed_analysis"])

        logger.info(f"AI analysis stored for {product.asin}: {len(product.detailed_analysis)} score(s)")
        return product

    def calculate_final_metrics(self, product: Product) -> Dict[str, Any]:
        """
        Compute authenticity metrics and mark the product completed.

        A review is fake when its score is at or above fake_threshold.
        Products without reviews get grade U and a zero fake percentage.
        """
        reviews = product.reviews or []
        scores = (product.openai_result or {}).get("detailed_scores") or {}

        total = len(reviews)
        fake_count = 0
        all_ratings = []
        genuine_ratings = []

        for review in reviews:
            rating = _to_float(review.get("rating"))
            score = _to_float(scores.get(str(review.get("id"))))
            is_fake = score is not None and score >= self.fake_threshold

            if is_fake:
                fake_count += 1
            if rating is not None:
                all_ratings.append(rating)
                if not is_fake:
                    genuine_ratings.append(rating)

        fake_percentage = round(fake_count / total * 100, 1) if total else 0.0
        amazon_rating = round(mean(all_ratings), 2) if all_ratings else 0.0
        adjusted_rating = round(mean(genuine_ratings), 2) if genuine_ratings else 0.0
        grade = calculate_grade(fake_percentage, total)
        explanation = build_explanation(
            grade, fake_count, total, (product.openai_result or {}).get("summary")
        )

        product.fake_percentage = fake_percentage
        product.grade = grade
        product.amazon_rating = amazon_rating
        product.adjusted_rating = adjusted_rating
        product.explanation = explanation
        product.save(
            update_fields=[
                "fake_percentage",
                "grade",
                "amazon_rating",
                "adjusted_rating",
                "explanation",
            ]
        )
        product.mark_analysis_completed()

        logger.info(
            f"Metrics for {product.asin}: grade={grade} fake={fake_percentage}% "
            f"rating={amazon_rating} adjusted={adjusted_rating}"
        )

        return {
            "fake_percentage": fake_percentage,
            "grade": grade,
            "amazon_rating": amazon_rating,
            "adjusted_rating": adjusted_rating,
            "explanation": explanation,
            "total_reviews": total,
            "fake_count": fake_count,
        }
