"""
Tests for management commands.
"""

from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from analyzer.models import AnalysisSession, Product, SessionStatus


def run_command(name, *args):
    out = StringIO()
    call_command(name, *args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestCleanupAnalysisSessions:
    @pytest.fixture
    def old_session(self):
        session = AnalysisSession.objects.create(
            product_url="https://www.amazon.com/dp/B0TEST0001/", status=SessionStatus.FAILED
        )
        AnalysisSession.objects.filter(id=session.id).update(
            created_at=timezone.now() - timedelta(hours=48)
        )
        return session

    def test_dry_run_keeps_sessions(self, old_session):
        output = run_command("cleanup_analysis_sessions", "--dry-run")

        assert "Dry run: 1 session(s) older than 24h would be deleted" in output
        assert AnalysisSession.objects.filter(id=old_session.id).exists()

    def test_deletes(self, old_session):
        output = run_command("cleanup_analysis_sessions", "--hours=12")

        assert "Deleted 1 session(s) older than 12h" in output
        assert not AnalysisSession.objects.exists()

    def test_deletes_stuck_processing_session(self, old_session):
        stuck = AnalysisSession.objects.create(
            product_url="https://www.amazon.com/dp/B0TEST0002/", status=SessionStatus.PROCESSING
        )
        AnalysisSession.objects.filter(id=stuck.id).update(
            created_at=timezone.now() - timedelta(hours=48)
        )

        output = run_command("cleanup_analysis_sessions")

        assert "Deleted 2 session(s) older than 24h" in output
        assert not AnalysisSession.objects.filter(id=stuck.id).exists()

    def test_negative_hours(self, db):
        with pytest.raises(CommandError):
            call_command("cleanup_analysis_sessions", "--hours=-1", stdout=StringIO())


@pytest.mark.django_db
class TestRescrapeProducts:
    @pytest.fixture
    def empty_products(self):
        products = [
            Product.objects.create(
                asin=asin, country="us", product_url=f"https://www.amazon.com/dp/{asin}/"
            )
            for asin in ("B0EMPTY001", "B0EMPTY002")
        ]
        Product.objects.filter(asin__startswith="B0EMPTY").update(
            updated_at=timezone.now() - timedelta(hours=48)
        )
        return products

    @patch("analyzer.management.commands.rescrape_products.trigger_scrape.apply_async")
    def test_queues_products_without_reviews(self, mock_apply, empty_products, product_with_reviews):
        Product.objects.filter(id=product_with_reviews.id).update(
            updated_at=timezone.now() - timedelta(hours=48)
        )

        output = run_command("rescrape_products")

        assert "Queued 2 rescrape(s)" in output
        queued = sorted(call.kwargs["args"][0] for call in mock_apply.call_args_list)
        assert queued == ["B0EMPTY001", "B0EMPTY002"]
        assert all(call.kwargs["queue"] == "scraping" for call in mock_apply.call_args_list)

    @patch("analyzer.management.commands.rescrape_products.trigger_scrape.apply_async")
    def test_limit(self, mock_apply, empty_products):
        run_command("rescrape_products", "--limit=1")

        assert mock_apply.call_count == 1

    @patch("analyzer.management.commands.rescrape_products.trigger_scrape.apply_async")
    def test_dry_run(self, mock_apply, empty_products):
        output = run_command("rescrape_products", "--dry-run")

        assert "Would rescrape B0EMPTY001 (us)" in output
        mock_apply.assert_not_called()

    @patch("analyzer.management.commands.rescrape_products.trigger_scrape.apply_async")
    def test_recently_updated_skipped(self, mock_apply, db):
        Product.objects.create(asin="B0FRESH001", country="us")

        output = run_command("rescrape_products")

        assert "No products without reviews" in output
        mock_apply.assert_not_called()
