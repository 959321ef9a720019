"""
Tests for product page scraping and metadata merge.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from analyzer.services.product_data import (
    AmazonProductPageScraper,
    ProductDataService,
    is_placeholder_title,
    parse_product_page,
)
from analyzer.tests.fakes import StaticMetadataScraper

PRODUCT_PAGE = """
<html>
  <head>
    <meta property="og:title" content="OG Title" />
    <meta property="og:image" content="https://m.media-amazon.com/images/I/og.jpg" />
  </head>
  <body>
    <span id="productTitle">  Stainless Steel Water Bottle  </span>
    <img id="landingImage" src="data:image/gif;base64,R0lGOD"
         data-old-hires="https://m.media-amazon.com/images/I/hires.jpg" />
  </body>
</html>
"""

CAPTCHA_PAGE = """
<html><body>
  <form action="/errors/validateCaptcha">
    <h4>Enter the characters you see below</h4>
  </form>
</body></html>
"""


def page_response(html, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = html
    return response


class TestParseProductPage:
    def test_prefers_page_elements(self):
        assert parse_product_page(PRODUCT_PAGE) == {
            "title": "Stainless Steel Water Bottle",
            "image_url": "https://m.media-amazon.com/images/I/hires.jpg",
        }

    def test_falls_back_to_open_graph(self):
        html = '<html><head><meta property="og:title" content="OG Title" />' \
               '<meta property="og:image" content="https://img/og.jpg" /></head></html>'

        assert parse_product_page(html) == {"title": "OG Title", "image_url": "https://img/og.jpg"}

    def test_data_uri_rejected(self):
        html = '<span id="productTitle">T</span><img id="landingImage" src="data:image/gif;base64,x" />'

        assert parse_product_page(html)["image_url"] is None

    def test_placeholder_detection(self):
        assert is_placeholder_title("Test Product B0TEST1234")
        assert is_placeholder_title("")
        assert not is_placeholder_title("Real Product")


class TestAmazonProductPageScraper:
    @patch("analyzer.services.product_data.httpx.get")
    def test_scrape(self, mock_get):
        mock_get.return_value = page_response(PRODUCT_PAGE)

        result = AmazonProductPageScraper(timeout=5).scrape("B0TEST1234", "de")

        assert result["title"] == "Stainless Steel Water Bottle"
        assert mock_get.call_args[0][0] == "https://www.amazon.de/dp/B0TEST1234/"
        assert mock_get.call_args.kwargs["follow_redirects"] is True

    @patch("analyzer.services.product_data.httpx.get")
    def test_captcha_alerts(self, mock_get, alert_channel):
        mock_get.return_value = page_response(CAPTCHA_PAGE)

        result = AmazonProductPageScraper().scrape("B0TEST1234", "us")

        assert result == {"title": None, "image_url": None}
        assert alert_channel.payloads[0]["title"] == "Amazon Session Expired"

    @patch("analyzer.services.product_data.httpx.get")
    def test_connect_error_alerts(self, mock_get, alert_channel):
        mock_get.side_effect = httpx.ConnectError("connection refused")

        result = AmazonProductPageScraper().scrape("B0TEST1234", "us")

        assert result == {"title": None, "image_url": None}
        assert alert_channel.payloads[0]["title"] == "Connectivity Issue"

    @patch("analyzer.services.product_data.httpx.get")
    def test_http_error_status(self, mock_get):
        mock_get.return_value = page_response("", status_code=503)

        assert AmazonProductPageScraper().scrape("B0TEST1234", "us")["title"] is None


@pytest.mark.django_db
class TestProductDataService:
    def test_fills_missing_metadata(self, product_with_reviews):
        product_with_reviews.product_image_url = None
        product_with_reviews.save()
        scraper = StaticMetadataScraper(title="Scraped Title", image_url="https://img/scraped.jpg")

        product = ProductDataService(scraper=scraper).scrape_and_update(product_with_reviews)

        product.refresh_from_db()
        # Real title kept, missing image filled
        assert product.product_title == "Stainless Steel Water Bottle"
        assert product.product_image_url == "https://img/scraped.jpg"
        assert product.have_product_data is True
        assert product.product_data_scraped_at is not None

    def test_replaces_placeholder_title(self, product_with_reviews):
        product_with_reviews.product_title = "Test Product B0TEST1234"
        product_with_reviews.product_image_url = None
        product_with_reviews.save()
        scraper = StaticMetadataScraper(title="Real Title", image_url="https://img/real.jpg")

        product = ProductDataService(scraper=scraper).scrape_and_update(product_with_reviews)

        assert product.product_title == "Real Title"

    def test_skips_when_available(self, product_with_reviews):
        scraper = StaticMetadataScraper(title="Other")

        ProductDataService(scraper=scraper).scrape_and_update(product_with_reviews)

        assert scraper.calls == 0

    def test_empty_scrape_is_not_an_error(self, product_with_reviews):
        product_with_reviews.product_image_url = None
        product_with_reviews.save()

        product = ProductDataService(scraper=StaticMetadataScraper()).scrape_and_update(
            product_with_reviews
        )

        product.refresh_from_db()
        assert product.have_product_data is False
        assert product.product_data_scraped_at is not None
