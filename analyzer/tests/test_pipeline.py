"""
Tests for the analysis pipeline: step sequencing, progress, cancellation
and failure handling.
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest

from analyzer.exceptions import ExternalServiceError
from analyzer.models import AnalysisSession, Product, SessionStatus
from analyzer.monitoring.error_classifier import USER_MESSAGES, ErrorType
from analyzer.pipeline import (
    INCOMPLETE_ANALYSIS_MESSAGE,
    PRODUCT_DATA_AVAILABLE_MESSAGE,
    AnalysisPipeline,
)
from analyzer.services.product_data import ProductDataService
from analyzer.services.review_analysis import ReviewAnalysisService
from analyzer.tests.fakes import FakeAIClient, FakeScraper, StaticMetadataScraper


def build_pipeline(scraper=None, ai_client=None, metadata=None, enqueue=None):
    scraper = scraper or FakeScraper(records=[{}, {}, {}])
    ai_client = ai_client or FakeAIClient()
    metadata = metadata or StaticMetadataScraper(
        title="Scraped Title", image_url="https://m.media-amazon.com/images/I/scraped.jpg"
    )
    pipeline = AnalysisPipeline(
        analysis_service=ReviewAnalysisService(
            scraper=scraper, ai_client=ai_client, poll_interval=0, poll_attempts=3
        ),
        product_data_service=ProductDataService(scraper=metadata),
        enqueue_price_analysis=enqueue or MagicMock(),
    )
    return pipeline, scraper, ai_client, metadata


def record_progress():
    """Patch update_progress to record every (step, percentage, message)."""
    calls = []
    original = AnalysisSession.update_progress

    def spy(self, step, percentage, message):
        calls.append((step, percentage, message))
        return original(self, step, percentage, message)

    return calls, patch.object(AnalysisSession, "update_progress", spy)


@pytest.mark.django_db
class TestHappyPath:
    def test_new_product_completes(self, analysis_session):
        enqueue = MagicMock()
        pipeline, scraper, ai_client, metadata = build_pipeline(enqueue=enqueue)

        outcome = pipeline.run(analysis_session.id)

        assert outcome.status == "completed"
        session = AnalysisSession.objects.get(id=analysis_session.id)
        assert session.status == SessionStatus.COMPLETED
        assert session.progress_percentage == 100.0
        assert session.current_step == 8
        assert session.result["success"] is True
        assert session.result["redirect_url"] == "/amazon/B0TEST1234/scraped-product"
        assert session.result["asin_data"]["asin"] == "B0TEST1234"
        assert session.result["analysis_result"]["grade"] == "A"
        assert session.started_at is not None

        assert len(scraper.triggered) == 1
        assert ai_client.review_calls == ["B0TEST1234"]
        enqueue.assert_called_once()
        assert enqueue.call_args[0][0].asin == "B0TEST1234"

    def test_progress_is_monotonic(self, analysis_session):
        pipeline, *_ = build_pipeline()
        calls, spy = record_progress()

        with spy:
            pipeline.run(analysis_session.id)

        steps = [step for step, _, _ in calls]
        percentages = [pct for _, pct, _ in calls]
        assert steps == [1, 2, 3, 4, 5, 6, 7]
        assert percentages == sorted(percentages)
        assert percentages == [12.0, 25.0, 52.0, 70.0, 85.0, 92.0, 98.0]

    def test_step_messages(self, analysis_session):
        pipeline, *_ = build_pipeline()
        calls, spy = record_progress()

        with spy:
            pipeline.run(analysis_session.id)

        messages = {step: message for step, _, message in calls}
        assert messages == {
            1: "Validating product URL...",
            2: "Checking product database...",
            3: "Gathering review information...",
            4: "Analyzing reviews with AI...",
            5: "Computing authenticity metrics...",
            6: PRODUCT_DATA_AVAILABLE_MESSAGE,
            7: "Generating final report...",
        }
        session = AnalysisSession.objects.get(id=analysis_session.id)
        assert session.current_message == "Analysis complete!"

    def test_progress_never_drops_below_stored_value(self, analysis_session):
        analysis_session.progress_percentage = 60.0
        analysis_session.save()
        pipeline, *_ = build_pipeline()
        calls, spy = record_progress()

        with spy:
            pipeline.run(analysis_session.id)

        assert [pct for _, pct, _ in calls][:4] == [60.0, 60.0, 60.0, 70.0]

    def test_analyzed_product_skips_fetch_and_scoring(self, analyzed_product):
        session = AnalysisSession.objects.create(
            asin="B0DONE0001", product_url="https://www.amazon.com/dp/B0DONE0001/"
        )
        pipeline, scraper, ai_client, metadata = build_pipeline()
        calls, spy = record_progress()

        with spy:
            outcome = pipeline.run(session.id)

        assert outcome.status == "completed"
        assert scraper.triggered == []
        assert ai_client.review_calls == []
        assert metadata.calls == 0
        assert (6, 92.0, PRODUCT_DATA_AVAILABLE_MESSAGE) in calls
        assert outcome.redirect_url == "/amazon/B0DONE0001/wireless-noise-cancelling-headphones"

    def test_missing_metadata_scraped_inline(self, analysis_session, product_with_reviews):
        product_with_reviews.product_image_url = None
        product_with_reviews.save()
        pipeline, scraper, ai_client, metadata = build_pipeline()
        calls, spy = record_progress()

        with spy:
            pipeline.run(analysis_session.id)

        assert (6, 92.0, "Fetching product information...") in calls
        assert metadata.calls == 1
        product = Product.objects.get(id=product_with_reviews.id)
        assert product.have_product_data is True

    def test_price_enqueue_failure_does_not_fail_session(self, analysis_session):
        pipeline, *_ = build_pipeline(enqueue=MagicMock(side_effect=ConnectionError("broker down")))

        assert pipeline.run(analysis_session.id).status == "completed"
        assert AnalysisSession.objects.get(id=analysis_session.id).is_completed


@pytest.mark.django_db
class TestCancellation:
    def test_cancel_during_scoring_stops_run(self, analysis_session):
        class CancellingAIClient(FakeAIClient):
            def analyze_reviews(self, asin, reviews):
                AnalysisSession.objects.filter(id=analysis_session.id).update(
                    status=SessionStatus.FAILED, error_message="Analysis cancelled by user"
                )
                return super().analyze_reviews(asin, reviews)

        enqueue = MagicMock()
        pipeline, *_ = build_pipeline(ai_client=CancellingAIClient(), enqueue=enqueue)

        outcome = pipeline.run(analysis_session.id)

        assert outcome.status == "cancelled"
        session = AnalysisSession.objects.get(id=analysis_session.id)
        assert session.status == SessionStatus.FAILED
        assert session.error_message == "Analysis cancelled by user"
        assert session.result is None
        assert session.progress_percentage == 70.0
        enqueue.assert_not_called()

    def test_session_deleted_mid_run_stops_run(self, analysis_session):
        class DeletingAIClient(FakeAIClient):
            def analyze_reviews(self, asin, reviews):
                AnalysisSession.objects.filter(id=analysis_session.id).delete()
                return super().analyze_reviews(asin, reviews)

        enqueue = MagicMock()
        pipeline, *_ = build_pipeline(ai_client=DeletingAIClient(), enqueue=enqueue)

        outcome = pipeline.run(analysis_session.id)

        assert outcome.status == "cancelled"
        assert not AnalysisSession.objects.filter(id=analysis_session.id).exists()
        enqueue.assert_not_called()

    def test_terminal_session_skipped(self, analysis_session):
        analysis_session.mark_failed("Analysis cancelled by user")
        pipeline, scraper, *_ = build_pipeline()

        outcome = pipeline.run(analysis_session.id)

        assert outcome.status == "skipped"
        assert scraper.triggered == []

    def test_missing_session(self, db):
        pipeline, scraper, *_ = build_pipeline()

        assert pipeline.run(uuid.uuid4()).status == "missing"
        assert scraper.triggered == []


@pytest.mark.django_db
class TestFailures:
    def test_retryable_failure_keeps_session_processing(self, analysis_session, alert_channel):
        ai_client = FakeAIClient(error=ExternalServiceError("AI down", service="ai"))
        pipeline, *_ = build_pipeline(ai_client=ai_client)

        with pytest.raises(ExternalServiceError):
            pipeline.run(analysis_session.id, is_final_attempt=False)

        session = AnalysisSession.objects.get(id=analysis_session.id)
        assert session.status == SessionStatus.PROCESSING
        assert session.error_message == USER_MESSAGES[ErrorType.OPENAI_ERROR]
        assert alert_channel.payloads == []

    def test_final_failure_marks_failed_and_alerts(self, analysis_session, alert_channel):
        scraper = FakeScraper(statuses=["failed"])
        pipeline, *_ = build_pipeline(scraper=scraper)

        outcome = pipeline.run(analysis_session.id, is_final_attempt=True)

        assert outcome.status == "failed"
        session = AnalysisSession.objects.get(id=analysis_session.id)
        assert session.status == SessionStatus.FAILED
        assert session.error_message == USER_MESSAGES[ErrorType.FETCHING_FAILED]
        assert "brightdata" not in session.error_message.lower()
        assert alert_channel.payloads[-1]["title"] == "System Error"

    def test_final_failure_returns_without_raising(self, analysis_session, alert_channel):
        ai_client = FakeAIClient(error=ExternalServiceError("AI down", service="ai"))
        pipeline, *_ = build_pipeline(ai_client=ai_client)

        outcome = pipeline.run(analysis_session.id, is_final_attempt=True)

        assert outcome.status == "failed"
        assert outcome.error == USER_MESSAGES[ErrorType.OPENAI_ERROR]
        assert AnalysisSession.objects.get(id=analysis_session.id).is_failed
        assert [p["title"] for p in alert_channel.payloads] == ["System Error"]

    def test_invalid_url_fails_with_user_message(self, db):
        session = AnalysisSession.objects.create(product_url="https://example.com/item/1")
        pipeline, *_ = build_pipeline()

        pipeline.run(session.id)

        session.refresh_from_db()
        assert session.is_failed
        assert session.error_message == USER_MESSAGES[ErrorType.INVALID_URL]

    def test_zero_reviews_fails_without_scoring(self, analysis_session):
        scraper = FakeScraper(
            records=[{"error": "no reviews"}],
            payload={
                "reviews": [],
                "product_name": "Brand New Gadget",
                "product_image_url": "https://m.media-amazon.com/images/I/new.jpg",
            },
        )
        pipeline, scraper, ai_client, _ = build_pipeline(scraper=scraper)

        outcome = pipeline.run(analysis_session.id)

        assert outcome.status == "failed"
        assert ai_client.review_calls == []
        session = AnalysisSession.objects.get(id=analysis_session.id)
        assert session.error_message == INCOMPLETE_ANALYSIS_MESSAGE
        assert Product.objects.get(asin="B0TEST1234").grade == "U"
