"""
Celery tasks for the Review Analyzer.

Scrape chain (queue "scraping"):
- trigger_scrape: start a provider job, schedule the first poll
- poll_scrape_progress: check progress, re-schedule itself or hand off
- process_scrape_results: download and persist reviews

Analysis:
- run_analysis_pipeline: drive an AnalysisSession to a terminal state
- run_price_analysis: decoupled price analysis for analyzed products
- scrape_product_metadata: backfill title/image for a product

Maintenance:
- cleanup_analysis_sessions: hourly removal of sessions past retention
"""

import logging
from typing import Any, Dict, Optional, Sequence

from celery import Task, shared_task

from analyzer.exceptions import ExternalServiceError
from analyzer.models import AnalysisSession, PriceAnalysisStatus, Product
from analyzer.monitoring.error_classifier import handle_exception
from analyzer.monitoring.error_rate import SERVICE_BRIGHTDATA_API, get_error_rate_monitor
from analyzer.pipeline import AnalysisPipeline
from analyzer.services.brightdata_client import BrightDataScraper
from analyzer.services.ports import JobScheduler
from analyzer.services.price_analysis import PriceAnalysisService
from analyzer.services.product_data import ProductDataService
from analyzer.services.scrape_orchestrator import ScrapeJobOrchestrator
from analyzer.services.sessions import cleanup_sessions

logger = logging.getLogger(__name__)

# Backoff schedules, indexed by the number of retries already made
SCRAPE_BACKOFF = (30, 60, 120)
POLL_RETRY_DELAY = 30
PIPELINE_BACKOFF = (30, 60, 120)
PRICE_BACKOFF = (30, 60)


def _backoff(schedule: Sequence[int], retries: int) -> int:
    return schedule[min(retries, len(schedule) - 1)]


class CeleryJobScheduler(JobScheduler):
    """Schedules the next scrape phase as a Celery task."""

    def schedule_poll(self, asin: str, country: str, job_id: str, attempt: int, delay: int) -> None:
        poll_scrape_progress.apply_async(
            args=[asin, country, job_id, attempt],
            countdown=delay,
            queue="scraping",
        )

    def schedule_process(self, asin: str, country: str, job_id: str) -> None:
        process_scrape_results.apply_async(
            args=[asin, country, job_id],
            queue="scraping",
        )


def _build_orchestrator() -> ScrapeJobOrchestrator:
    return ScrapeJobOrchestrator(BrightDataScraper(), CeleryJobScheduler())


# =============================================================================
# Scrape chain
# =============================================================================


@shared_task(
    name="analyzer.tasks.trigger_scrape",
    bind=True,
    max_retries=len(SCRAPE_BACKOFF) - 1,
    time_limit=60,
)
def trigger_scrape(self, asin: str, country: str = "us") -> Dict[str, Any]:
    """
    Start a scrape job for a product.

    Retried with 30s/60s backoff; a failed last try is recorded with the
    error-rate monitor, which pages operators once failures pile up.
    """
    logger.info(f"Triggering scrape for {asin} ({country}), try {self.request.retries + 1}")

    try:
        job_id = _build_orchestrator().trigger(asin, country)
    except Exception as e:
        if self.request.retries < self.max_retries:
            countdown = _backoff(SCRAPE_BACKOFF, self.request.retries)
            logger.warning(f"Scrape trigger for {asin} failed, retrying in {countdown}s: {e}")
            raise self.retry(exc=e, countdown=countdown)

        logger.error(f"Scrape trigger for {asin} failed after {self.request.retries + 1} tries: {e}")
        get_error_rate_monitor().record_failure(
            SERVICE_BRIGHTDATA_API,
            "TRIGGER_RETRIES_EXHAUSTED",
            f"Scrape trigger failed for {asin} after {self.request.retries + 1} tries",
            {"asin": asin, "country": country, "error": str(e)[:200]},
            e,
        )
        raise

    return {"asin": asin, "country": country, "job_id": job_id}


@shared_task(
    name="analyzer.tasks.poll_scrape_progress",
    bind=True,
    max_retries=9,
    time_limit=60,
)
def poll_scrape_progress(
    self, asin: str, country: str, job_id: str, attempt: int = 1
) -> Dict[str, Any]:
    """
    Check a scrape job and schedule the next phase.

    Provider failures and poll exhaustion end the chain; transient
    errors (database, broker) are retried.
    """
    try:
        status = _build_orchestrator().poll(asin, country, job_id, attempt)
    except ExternalServiceError:
        raise
    except Exception as e:
        if self.request.retries < self.max_retries:
            logger.warning(f"Poll of scrape job {job_id} errored, retrying: {e}")
            raise self.retry(exc=e, countdown=POLL_RETRY_DELAY)
        raise

    return {"asin": asin, "job_id": job_id, "attempt": attempt, "status": status}


@shared_task(
    name="analyzer.tasks.process_scrape_results",
    bind=True,
    max_retries=len(SCRAPE_BACKOFF) - 1,
    time_limit=300,
)
def process_scrape_results(self, asin: str, country: str, job_id: str) -> Dict[str, Any]:
    """Download scrape results and persist them on the product."""
    try:
        product = _build_orchestrator().process(asin, country, job_id)
    except Exception as e:
        if self.request.retries < self.max_retries:
            countdown = _backoff(SCRAPE_BACKOFF, self.request.retries)
            logger.warning(f"Processing scrape job {job_id} failed, retrying in {countdown}s: {e}")
            raise self.retry(exc=e, countdown=countdown)
        raise

    return {
        "asin": asin,
        "job_id": job_id,
        "product_id": str(product.id),
        "reviews": product.review_count,
    }


# =============================================================================
# Analysis
# =============================================================================


class AnalysisPipelineTask(Task):
    """Marks the session failed if the task dies outside the pipeline's handling."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        session_id = args[0] if args else kwargs.get("session_id")
        if not session_id:
            return

        session = AnalysisSession.objects.filter(id=session_id).first()
        if session is None or session.is_terminal:
            return

        message = handle_exception(exc, {"session_id": str(session_id), "asin": session.asin})
        session.mark_failed(message)
        logger.error(f"Analysis task {task_id} failed permanently for session {session_id}")


@shared_task(
    name="analyzer.tasks.run_analysis_pipeline",
    bind=True,
    base=AnalysisPipelineTask,
    max_retries=len(PIPELINE_BACKOFF) - 1,
    time_limit=360,
    soft_time_limit=345,
)
def run_analysis_pipeline(self, session_id: str) -> Dict[str, Any]:
    """
    Run the analysis pipeline for a session.

    While retries remain, a failing run re-raises and the session stays
    processing; the last try marks it failed. A soft time limit hit is
    retried like any other failure.
    """
    is_final_attempt = self.request.retries >= self.max_retries
    logger.info(
        f"Running analysis pipeline for session {session_id} "
        f"(try {self.request.retries + 1}/{self.max_retries + 1})"
    )

    try:
        outcome = AnalysisPipeline().run(session_id, is_final_attempt=is_final_attempt)
    except Exception as e:
        countdown = _backoff(PIPELINE_BACKOFF, self.request.retries)
        logger.warning(f"Analysis pipeline for session {session_id} will retry in {countdown}s")
        raise self.retry(exc=e, countdown=countdown)

    return outcome.to_dict()


class PriceAnalysisTask(Task):
    """Leaves the product's price analysis failed when retries are exhausted."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        product_id = args[0] if args else kwargs.get("product_id")
        if not product_id:
            return

        updated = Product.objects.filter(id=product_id).exclude(
            price_analysis_status=PriceAnalysisStatus.COMPLETED
        ).update(price_analysis_status=PriceAnalysisStatus.FAILED)
        if updated:
            logger.error(f"Price analysis failed permanently for product {product_id}: {exc}")


@shared_task(
    name="analyzer.tasks.run_price_analysis",
    bind=True,
    base=PriceAnalysisTask,
    max_retries=len(PRICE_BACKOFF) - 1,
    time_limit=120,
)
def run_price_analysis(self, product_id: str) -> Dict[str, Any]:
    """Analyse pricing for an analyzed product; skipped otherwise."""
    product = Product.objects.filter(id=product_id).first()
    if product is None:
        logger.warning(f"Product {product_id} not found, skipping price analysis")
        return {"product_id": product_id, "skipped": "not_found"}

    if product.has_price_analysis:
        return {"product_id": product_id, "skipped": "already_analyzed"}

    if not product.is_analyzed:
        logger.info(f"Product {product.asin} not analyzed yet, skipping price analysis")
        return {"product_id": product_id, "skipped": "not_analyzed"}

    try:
        PriceAnalysisService().analyze_pricing(product)
    except Exception as e:
        if self.request.retries < self.max_retries:
            countdown = _backoff(PRICE_BACKOFF, self.request.retries)
            logger.warning(f"Price analysis for {product.asin} failed, retrying in {countdown}s: {e}")
            raise self.retry(exc=e, countdown=countdown)
        raise

    return {"product_id": product_id, "asin": product.asin, "status": "completed"}


@shared_task(
    name="analyzer.tasks.scrape_product_metadata",
    bind=True,
    max_retries=2,
    time_limit=120,
)
def scrape_product_metadata(self, product_id: str) -> Dict[str, Any]:
    """Fill missing title/image for a product."""
    product = Product.objects.filter(id=product_id).first()
    if product is None:
        logger.warning(f"Product {product_id} not found, skipping metadata scrape")
        return {"product_id": product_id, "skipped": "not_found"}

    if product.have_product_data:
        return {"product_id": product_id, "skipped": "already_available"}

    try:
        product = ProductDataService().scrape_and_update(product)
    except Exception as e:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=e)
        raise

    return {
        "product_id": product_id,
        "asin": product.asin,
        "have_product_data": product.have_product_data,
    }


# =============================================================================
# Maintenance
# =============================================================================


@shared_task(name="analyzer.tasks.cleanup_analysis_sessions")
def cleanup_analysis_sessions(hours: Optional[int] = None) -> Dict[str, Any]:
    """Periodic task: delete sessions older than the retention window."""
    deleted = cleanup_sessions(hours=hours)
    logger.info(f"Cleanup removed {deleted} analysis session(s)")
    return {"deleted": deleted}
