"""
Analysis Pipeline - drives one AnalysisSession from pending to a terminal state.

Steps (progress percentage published when each step starts):
    1. validation          12%
    2. database_check      25%
    3. fetch_reviews       52%   (only when reviews are missing)
    4. openai_analysis     70%   (only when scores are missing and reviews exist)
    5. calculate_metrics   85%
    6. fetch_product_data  92%
    7. finalize            98%
    8. complete           100%   (written by mark_completed)

Progress never moves backwards. Cancellation is cooperative: every
progress write re-reads the session, and a terminal session stops the
run at the next step boundary.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from analyzer.models import AnalysisSession, Product
from analyzer.monitoring.alerts import AlertDispatcher, get_alert_dispatcher
from analyzer.monitoring.error_classifier import handle_exception
from analyzer.monitoring.sentry_integration import add_analysis_breadcrumb
from analyzer.services.ports import AnalysisService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineStep:
    number: int
    weight: float
    message: str


STEPS: Dict[str, PipelineStep] = {
    "validation": PipelineStep(1, 12.0, "Validating product URL..."),
    "database_check": PipelineStep(2, 25.0, "Checking product database..."),
    "fetch_reviews": PipelineStep(3, 52.0, "Gathering review information..."),
    "openai_analysis": PipelineStep(4, 70.0, "Analyzing reviews with AI..."),
    "calculate_metrics": PipelineStep(5, 85.0, "Computing authenticity metrics..."),
    "fetch_product_data": PipelineStep(6, 92.0, "Fetching product information..."),
    "finalize": PipelineStep(7, 98.0, "Generating final report..."),
}

PRODUCT_DATA_AVAILABLE_MESSAGE = "Product information already available"
INCOMPLETE_ANALYSIS_MESSAGE = (
    "We could not complete the analysis for this product. Please try again later."
)


class PipelineStopped(Exception):
    """The session became terminal mid-run (cancelled or finished elsewhere)."""


@dataclass
class PipelineOutcome:
    """What a pipeline run ended with."""

    status: str  # completed, failed, cancelled, skipped, missing
    session_id: str
    redirect_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "session_id": self.session_id,
            "redirect_url": self.redirect_url,
            "error": self.error,
        }


def _default_price_enqueue(product: Product) -> None:
    from analyzer.tasks import run_price_analysis

    run_price_analysis.apply_async(args=[str(product.id)], queue="price-analysis")


class AnalysisPipeline:
    """
    Sequences the analysis steps for a session.

    Usage:
        pipeline = AnalysisPipeline()
        outcome = pipeline.run(session_id, is_final_attempt=True)
    """

    def __init__(
        self,
        analysis_service: AnalysisService = None,
        product_data_service=None,
        alerts: AlertDispatcher = None,
        enqueue_price_analysis: Callable[[Product], None] = None,
    ):
        if analysis_service is None:
            from analyzer.services.review_analysis import ReviewAnalysisService

            analysis_service = ReviewAnalysisService()
        if product_data_service is None:
            from analyzer.services.product_data import ProductDataService

            product_data_service = ProductDataService()

        self.analysis_service = analysis_service
        self.product_data_service = product_data_service
        self.alerts = alerts or get_alert_dispatcher()
        self.enqueue_price_analysis = enqueue_price_analysis or _default_price_enqueue

    def run(self, session_id: str, is_final_attempt: bool = True) -> PipelineOutcome:
        """
        Run the pipeline for one session.

        Errors are converted to a sanitized message. While the job still
        has retries left the session stays processing, the message is
        recorded and the exception is re-raised so the queue retries.
        On the final attempt the session is marked failed, operators are
        alerted and a failed outcome is returned instead of raising.
        """
        session_id = str(session_id)

        try:
            session = AnalysisSession.objects.get(id=session_id)
        except AnalysisSession.DoesNotExist:
            logger.warning(f"Analysis session {session_id} not found, nothing to run")
            return PipelineOutcome(status="missing", session_id=session_id)

        if session.is_terminal:
            logger.info(f"Analysis session {session_id} already {session.status}, skipping")
            return PipelineOutcome(status="skipped", session_id=session_id)

        try:
            return self._execute(session)

        except PipelineStopped:
            logger.info(f"Analysis session {session_id} stopped: session is {session.status}")
            return PipelineOutcome(status="cancelled", session_id=session_id)

        except Exception as e:
            message = handle_exception(
                e,
                {
                    "session_id": session_id,
                    "asin": session.asin,
                    "product_url": session.product_url,
                    "final_attempt": is_final_attempt,
                },
            )

            if not is_final_attempt:
                session.record_retryable_error(message)
                raise

            session.mark_failed(message)
            self.alerts.system_error(
                "Analysis pipeline failed after all retries",
                exception=e,
                context={"session_id": session_id, "asin": session.asin},
            )
            return PipelineOutcome(status="failed", session_id=session_id, error=message)

    def _execute(self, session: AnalysisSession) -> PipelineOutcome:
        session_id = str(session.id)

        if not session.mark_processing():
            raise PipelineStopped(session_id)

        # 1. Validate URL
        self._publish(session, "validation")
        check = self.analysis_service.check_product_exists(session.product_url)
        asin = check["asin"]
        country = check["country"]

        if session.asin != asin:
            session.asin = asin
            session.save(update_fields=["asin", "updated_at"])

        add_analysis_breadcrumb("URL validated", session_id=session_id, asin=asin)

        # 2. Existing data
        self._publish(session, "database_check")
        product: Optional[Product] = check.get("asin_data")

        # 3. Reviews
        if check["needs_fetching"] or product is None:
            self._publish(session, "fetch_reviews")
            product = self.analysis_service.fetch_reviews(asin, country, check["product_url"])
            add_analysis_breadcrumb(
                "Reviews fetched",
                session_id=session_id,
                asin=asin,
                extra_data={"reviews": product.review_count},
            )

        # 4. Scoring; skipped for products without reviews
        if check["needs_openai"] and product.reviews:
            self._publish(session, "openai_analysis")
            product = self.analysis_service.analyze_with_llm(product)
        elif not product.reviews:
            logger.info(f"No reviews for {asin}, skipping AI analysis")

        # 5. Metrics
        self._publish(session, "calculate_metrics")
        analysis_result = self.analysis_service.calculate_final_metrics(product)

        # 6. Product metadata, inline so the result is complete
        if product.have_product_data:
            self._publish(session, "fetch_product_data", PRODUCT_DATA_AVAILABLE_MESSAGE)
        else:
            self._publish(session, "fetch_product_data")
            product = self.product_data_service.scrape_and_update(product)

        # 7. Finalize
        self._publish(session, "finalize")
        product.refresh_from_db()

        if not product.is_analyzed:
            logger.warning(
                f"Analysis for {asin} incomplete: status={product.status} "
                f"grade={product.grade} reviews={product.review_count}"
            )
            session.mark_failed(INCOMPLETE_ANALYSIS_MESSAGE)
            return PipelineOutcome(
                status="failed", session_id=session_id, error=INCOMPLETE_ANALYSIS_MESSAGE
            )

        redirect_url = product.seo_url
        completed = session.mark_completed(
            {
                "success": True,
                "asin_data": product.to_snapshot(),
                "analysis_result": analysis_result,
                "redirect_url": redirect_url,
            }
        )
        if not completed:
            raise PipelineStopped(session_id)

        self._queue_price_analysis(product)

        logger.info(f"Analysis session {session_id} completed for {asin} -> {redirect_url}")
        return PipelineOutcome(status="completed", session_id=session_id, redirect_url=redirect_url)

    def _publish(self, session: AnalysisSession, key: str, message: str = None) -> None:
        step = STEPS[key]
        percentage = max(step.weight, session.progress_percentage or 0.0)

        if not session.update_progress(step.number, percentage, message or step.message):
            raise PipelineStopped(str(session.id))

    def _queue_price_analysis(self, product: Product) -> None:
        if product.has_price_analysis:
            return
        try:
            self.enqueue_price_analysis(product)
        except Exception as e:
            # Price analysis is best effort and never affects the session
            logger.warning(f"Could not queue price analysis for {product.asin}: {e}")
