"""
Product metadata scrape - title and main image from the product page.

Used inline by the analysis pipeline (the user is waiting for a complete
result) and by the scrape_product_metadata task for backfills. An empty
scrape is not an error: the product keeps have_product_data=False and a
later pass can fill the gap.
"""

import logging
from typing import Dict, Optional

import httpx
from bs4 import BeautifulSoup
from django.conf import settings
from django.utils import timezone

from analyzer.models import Product
from analyzer.monitoring.alerts import AlertDispatcher, get_alert_dispatcher
from analyzer.services.amazon_urls import build_product_url
from analyzer.services.ports import ProductMetadataScraper

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE_PREFIX = "Test Product"

CAPTCHA_MARKERS = (
    "/errors/validatecaptcha",
    "enter the characters you see below",
    "type the characters you see in this image",
)

EMPTY_METADATA = {"title": None, "image_url": None}


def is_placeholder_title(title: Optional[str]) -> bool:
    return not title or title.startswith(PLACEHOLDER_TITLE_PREFIX)


def is_placeholder_image(image_url: Optional[str]) -> bool:
    return not image_url or "placeholder" in image_url.lower()


def parse_product_page(html: str) -> Dict[str, Optional[str]]:
    """Extract title and main image URL from product page HTML."""
    soup = BeautifulSoup(html, "html.parser")

    title = None
    title_el = soup.select_one("#productTitle")
    if title_el:
        title = title_el.get_text(strip=True) or None
    if not title:
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title and og_title.get("content"):
            title = og_title["content"].strip() or None

    image_url = None
    image_el = soup.select_one("#landingImage") or soup.select_one("#imgBlkFront")
    if image_el:
        image_url = image_el.get("data-old-hires") or image_el.get("src") or None
    if not image_url:
        og_image = soup.find("meta", attrs={"property": "og:image"})
        if og_image and og_image.get("content"):
            image_url = og_image["content"].strip() or None

    # Inline data URIs are lazy-load stubs, not real images
    if image_url and image_url.startswith("data:"):
        image_url = None

    return {"title": title, "image_url": image_url}


class AmazonProductPageScraper(ProductMetadataScraper):
    """
    Fetches the product page with httpx and parses it with BeautifulSoup.

    A CAPTCHA page means Amazon has flagged the scraper; operators are
    alerted (throttled) and an empty result is returned.
    """

    # Use a browser User-Agent to avoid bot detection
    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
    }

    def __init__(self, timeout: float = None, alerts: AlertDispatcher = None):
        self.timeout = timeout or getattr(settings, "ANALYZER_PRODUCT_PAGE_TIMEOUT", 30)
        self.alerts = alerts or get_alert_dispatcher()

    def scrape(self, asin: str, country: str) -> Dict[str, Optional[str]]:
        url = build_product_url(asin, country)

        try:
            response = httpx.get(
                url,
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.DEFAULT_USER_AGENT, **self.DEFAULT_HEADERS},
            )
        except httpx.ConnectError as e:
            logger.warning(f"Product page connection failed for {asin}: {e}")
            self.alerts.connectivity_issue("Amazon", str(e), {"asin": asin})
            return dict(EMPTY_METADATA)
        except httpx.HTTPError as e:
            logger.warning(f"Product page fetch failed for {asin}: {e}")
            return dict(EMPTY_METADATA)

        if response.status_code != 200:
            logger.warning(f"Product page for {asin} returned HTTP {response.status_code}")
            return dict(EMPTY_METADATA)

        html = response.text
        if any(marker in html.lower() for marker in CAPTCHA_MARKERS):
            logger.warning(f"CAPTCHA page served for {asin}")
            self.alerts.amazon_captcha_detected(url, {"asin": asin, "country": country})
            return dict(EMPTY_METADATA)

        return parse_product_page(html)


class ProductDataService:
    """Fills missing or placeholder title/image on a product."""

    def __init__(self, scraper: ProductMetadataScraper = None):
        self.scraper = scraper or AmazonProductPageScraper()

    def scrape_and_update(self, product: Product) -> Product:
        """
        Scrape metadata and merge it into the product.

        Only missing or placeholder values are replaced. have_product_data
        is recomputed from the merged state on save.
        """
        if product.have_product_data:
            logger.info(f"Product data already available for {product.asin}")
            return product

        scraped = self.scraper.scrape(product.asin, product.country)
        title = scraped.get("title")
        image_url = scraped.get("image_url")
        product.product_data_scraped_at = timezone.now()

        if not title and not image_url:
            logger.warning(f"No product metadata scraped for {product.asin}")
            product.save(update_fields=["product_data_scraped_at"])
            return product

        if title and is_placeholder_title(product.product_title):
            product.product_title = title
        if image_url and is_placeholder_image(product.product_image_url):
            product.product_image_url = image_url

        product.save(
            update_fields=["product_title", "product_image_url", "product_data_scraped_at"]
        )

        logger.info(
            f"Product data for {product.asin} updated: "
            f"have_product_data={product.have_product_data}"
        )
        return product
