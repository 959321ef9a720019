"""
Tests for the Trigger -> Poll -> Process scrape chain.
"""

import pytest

from analyzer.exceptions import ExternalServiceError, ScrapeTimeoutError
from analyzer.models import Product, ProductStatus
from analyzer.monitoring.error_rate import SERVICE_BRIGHTDATA_SCRAPER, get_error_rate_monitor
from analyzer.services.scrape_orchestrator import (
    MAX_POLL_ATTEMPTS,
    POLL_DELAY,
    ScrapeJobOrchestrator,
    save_scrape_results,
)
from analyzer.tests.fakes import FakeScraper, RecordingScheduler


def build(statuses=("ready",), **kwargs):
    scraper = FakeScraper(statuses=statuses, **kwargs)
    scheduler = RecordingScheduler()
    return ScrapeJobOrchestrator(scraper, scheduler), scraper, scheduler


class TestTrigger:
    def test_schedules_first_poll(self):
        orchestrator, scraper, scheduler = build()

        job_id = orchestrator.trigger("B0TEST1234", "gb")

        assert job_id == "s_fake001"
        assert scraper.triggered == [["https://www.amazon.co.uk/dp/B0TEST1234/"]]
        assert scheduler.polls == [
            {"asin": "B0TEST1234", "country": "gb", "job_id": "s_fake001", "attempt": 1, "delay": POLL_DELAY}
        ]

    def test_no_job_id(self):
        orchestrator, scraper, scheduler = build(job_id=None)

        with pytest.raises(ExternalServiceError):
            orchestrator.trigger("B0TEST1234", "us")
        assert scheduler.polls == []

    def test_provider_exception_wrapped(self):
        orchestrator, scraper, scheduler = build()
        def explode(urls):
            raise RuntimeError("socket closed")

        scraper.trigger = explode

        with pytest.raises(ExternalServiceError, match="socket closed"):
            orchestrator.trigger("B0TEST1234", "us")


class TestPoll:
    def test_ready_schedules_process(self):
        orchestrator, scraper, scheduler = build(statuses=["ready"])

        assert orchestrator.poll("B0TEST1234", "us", "s_fake001", 1) == "ready"
        assert scheduler.processes == [{"asin": "B0TEST1234", "country": "us", "job_id": "s_fake001"}]
        assert scheduler.polls == []

    @pytest.mark.parametrize("attempt", [1, 5, MAX_POLL_ATTEMPTS - 1])
    def test_running_schedules_next_attempt(self, attempt):
        orchestrator, scraper, scheduler = build(statuses=["running"])

        orchestrator.poll("B0TEST1234", "us", "s_fake001", attempt)

        assert scheduler.polls == [
            {"asin": "B0TEST1234", "country": "us", "job_id": "s_fake001", "attempt": attempt + 1, "delay": POLL_DELAY}
        ]
        assert scheduler.processes == []

    def test_running_at_last_attempt_times_out(self, alert_channel):
        orchestrator, scraper, scheduler = build(statuses=["running"])

        with pytest.raises(ScrapeTimeoutError) as exc_info:
            orchestrator.poll("B0TEST1234", "us", "s_fake001", MAX_POLL_ATTEMPTS)

        assert exc_info.value.attempts == MAX_POLL_ATTEMPTS
        assert scheduler.polls == []
        assert scraper.cancelled == ["s_fake001"]
        assert alert_channel.payloads == []
        rate = get_error_rate_monitor().get_error_rate(SERVICE_BRIGHTDATA_SCRAPER, "POLLING_TIMEOUT")
        assert rate["failures"] == 1

    def test_repeated_timeouts_alert_once(self, alert_channel):
        for _ in range(4):
            orchestrator, scraper, scheduler = build(statuses=["running"])
            with pytest.raises(ScrapeTimeoutError):
                orchestrator.poll("B0TEST1234", "us", "s_fake001", MAX_POLL_ATTEMPTS)

        assert [p["title"] for p in alert_channel.payloads] == ["API Timeout"]
        assert "cancellation successful" in alert_channel.payloads[0]["message"]
        assert "Timeout seconds: 300" in alert_channel.payloads[0]["message"]

    def test_unknown_status_is_fatal(self):
        orchestrator, scraper, scheduler = build(statuses=["unknown"])

        with pytest.raises(ScrapeTimeoutError, match="Final status: unknown"):
            orchestrator.poll("B0TEST1234", "us", "s_fake001", 2)
        assert scheduler.polls == []

    @pytest.mark.parametrize("status", ["failed", "error"])
    def test_failed_status(self, status, alert_channel):
        orchestrator, scraper, scheduler = build(statuses=[status])

        with pytest.raises(ExternalServiceError):
            orchestrator.poll("B0TEST1234", "us", "s_fake001", 1)

        assert scheduler.polls == []
        assert scheduler.processes == []
        assert alert_channel.payloads == []

    def test_failed_jobs_alert_at_threshold(self, alert_channel):
        for _ in range(3):
            orchestrator, scraper, scheduler = build(statuses=["failed"])
            with pytest.raises(ExternalServiceError):
                orchestrator.poll("B0TEST1234", "us", "s_fake001", 1)

        assert len(alert_channel.payloads) == 1
        payload = alert_channel.payloads[0]
        assert payload["title"] == "Connectivity Issue"
        assert payload["message"].startswith("[MEDIUM_P2] User-facing BrightData Web Scraper issue")
        assert "3 SCRAPING_FAILED error(s) in 15 minutes" in payload["message"]

    def test_ready_after_timeout_records_recovery(self, alert_channel):
        orchestrator, scraper, scheduler = build(statuses=["running"])
        with pytest.raises(ScrapeTimeoutError):
            orchestrator.poll("B0TEST1234", "us", "s_fake001", MAX_POLL_ATTEMPTS)

        orchestrator, scraper, scheduler = build(statuses=["ready"])
        orchestrator.poll("B0TEST1234", "us", "s_fake002", 1)

        for _ in range(2):
            orchestrator, scraper, scheduler = build(statuses=["running"])
            with pytest.raises(ScrapeTimeoutError):
                orchestrator.poll("B0TEST1234", "us", "s_fake003", MAX_POLL_ATTEMPTS)

        assert alert_channel.payloads == []

    def test_chain_is_bounded(self):
        """Following the scheduled polls never exceeds MAX_POLL_ATTEMPTS."""
        orchestrator, scraper, scheduler = build(statuses=["running"])
        attempt = 1

        with pytest.raises(ScrapeTimeoutError):
            while True:
                orchestrator.poll("B0TEST1234", "us", "s_fake001", attempt)
                attempt = scheduler.polls[-1]["attempt"]

        assert scraper.progress_checks == MAX_POLL_ATTEMPTS
        assert len(scheduler.polls) == MAX_POLL_ATTEMPTS - 1


@pytest.mark.django_db
class TestProcess:
    def test_persists_reviews(self):
        orchestrator, scraper, scheduler = build(records=[{}, {}, {}])

        product = orchestrator.process("B0TEST1234", "us", "s_fake001")

        assert product.review_count == 3
        assert product.status == ProductStatus.PENDING_ANALYSIS
        assert product.have_product_data is True
        assert product.total_reviews_on_amazon == 100

    def test_no_records(self):
        orchestrator, scraper, scheduler = build(records=[])

        with pytest.raises(ExternalServiceError, match="No results returned from scrape job s_fake001"):
            orchestrator.process("B0TEST1234", "us", "s_fake001")
        assert not Product.objects.filter(asin="B0TEST1234").exists()


@pytest.mark.django_db
class TestSaveScrapeResults:
    def test_partial_metadata_keeps_stored_values(self, product_with_reviews):
        payload = {
            "reviews": [{"id": "n1", "rating": 3, "text": "ok"}],
            "product_name": "New Title Without Image",
            "product_image_url": None,
        }

        product = save_scrape_results("B0TEST1234", "us", payload)

        assert product.id == product_with_reviews.id
        assert product.product_title == "Stainless Steel Water Bottle"
        assert product.have_product_data is True
        assert product.review_count == 1

    def test_total_reviews_falls_back_to_count(self):
        payload = {"reviews": [{"id": "n1"}, {"id": "n2"}]}

        product = save_scrape_results("B0NEW00001", "de", payload)

        assert product.total_reviews_on_amazon == 2
        assert product.product_url == "https://www.amazon.de/dp/B0NEW00001/"
        assert product.have_product_data is False
