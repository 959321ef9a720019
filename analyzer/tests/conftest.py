"""
Pytest configuration and fixtures for the Review Analyzer test suite.
"""

import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


class RecordingChannel:
    """Push channel that records payloads instead of sending them."""

    def __init__(self, delivered=True):
        self.delivered = delivered
        self.payloads = []

    def send(self, payload):
        self.payloads.append(payload)
        return self.delivered


class BrokenCache:
    """Cache backend whose server is unreachable."""

    def get(self, key, default=None):
        raise ConnectionError("Error 111 connecting to redis:6379. Connection refused.")

    def set(self, key, value, timeout=None):
        raise ConnectionError("Error 111 connecting to redis:6379. Connection refused.")


@pytest.fixture(autouse=True)
def clear_cache():
    """Alert throttles and DRF throttles live in the cache."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def alert_channel(monkeypatch):
    """Route every alert through a recording channel."""
    from analyzer.monitoring import alerts

    channel = RecordingChannel()
    monkeypatch.setattr(alerts, "_alert_dispatcher", alerts.AlertDispatcher(channel=channel))
    return channel


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


def make_reviews(count, rating=5):
    """Canonical review dicts with ids r1..rN."""
    return [
        {
            "id": f"r{i}",
            "rating": rating,
            "title": f"Review {i}",
            "text": f"Review text {i}",
            "author": "Anonymous",
            "date": "2024-01-01",
            "meta_data": {"verified_purchase": True, "vine_review": False},
        }
        for i in range(1, count + 1)
    ]


@pytest.fixture
def analysis_session(db):
    """Create a pending AnalysisSession."""
    from analyzer.models import AnalysisSession

    return AnalysisSession.objects.create(
        user_session="browser-session-1",
        asin="B0TEST1234",
        product_url="https://www.amazon.com/dp/B0TEST1234/",
    )


@pytest.fixture
def product_with_reviews(db):
    """Create a Product with scraped reviews but no analysis yet."""
    from analyzer.models import Product, ProductStatus

    return Product.objects.create(
        asin="B0TEST1234",
        country="us",
        product_url="https://www.amazon.com/dp/B0TEST1234/",
        status=ProductStatus.PENDING_ANALYSIS,
        reviews=make_reviews(4),
        total_reviews_on_amazon=120,
        product_title="Stainless Steel Water Bottle",
        product_image_url="https://m.media-amazon.com/images/I/bottle.jpg",
    )


@pytest.fixture
def analyzed_product(db):
    """Create a fully analyzed Product."""
    from django.utils import timezone
    from analyzer.models import Product, ProductStatus

    now = timezone.now()
    return Product.objects.create(
        asin="B0DONE0001",
        country="us",
        product_url="https://www.amazon.com/dp/B0DONE0001/",
        status=ProductStatus.COMPLETED,
        reviews=make_reviews(3),
        product_title="Wireless Noise Cancelling Headphones",
        product_image_url="https://m.media-amazon.com/images/I/headphones.jpg",
        openai_result={"detailed_scores": {"r1": 10, "r2": 20, "r3": 90}},
        fake_percentage=33.3,
        grade="C",
        amazon_rating=5.0,
        adjusted_rating=5.0,
        explanation="1 of 3 analyzed reviews were flagged as potentially fake.",
        first_analyzed_at=now,
        last_analyzed_at=now,
    )
