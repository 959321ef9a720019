"""
Amazon marketplace URLs and ASIN extraction.
"""

import logging
import re
from typing import Tuple
from urllib.parse import urlparse

import requests

from analyzer.exceptions import InvalidProductUrlError

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "us"

# Marketplace domain per country code
AMAZON_DOMAINS = {
    "us": "amazon.com",
    "gb": "amazon.co.uk",
    "uk": "amazon.co.uk",
    "ca": "amazon.ca",
    "de": "amazon.de",
    "fr": "amazon.fr",
    "it": "amazon.it",
    "es": "amazon.es",
    "jp": "amazon.co.jp",
    "au": "amazon.com.au",
    "mx": "amazon.com.mx",
    "in": "amazon.in",
    "sg": "amazon.sg",
    "br": "amazon.com.br",
    "nl": "amazon.nl",
    "tr": "amazon.com.tr",
    "ae": "amazon.ae",
    "sa": "amazon.sa",
    "se": "amazon.se",
    "pl": "amazon.pl",
    "eg": "amazon.eg",
    "be": "amazon.com.be",
}

# First country listed for a domain wins (amazon.co.uk -> gb)
COUNTRY_BY_DOMAIN = {}
for _country, _domain in AMAZON_DOMAINS.items():
    COUNTRY_BY_DOMAIN.setdefault(_domain, _country)

SHORT_LINK_HOSTS = {"a.co", "amzn.to", "amzn.eu", "amzn.asia"}

ASIN_RE = re.compile(r"^[A-Z0-9]{10}$", re.IGNORECASE)

ASIN_PATTERNS = [
    re.compile(r"/dp/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/product-reviews/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"[?&]ASIN=([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/([A-Z0-9]{10})(?:[/?#]|$)"),
]

SHORT_LINK_TIMEOUT = 10


def get_domain(country: str) -> str:
    """Marketplace domain for a country, falling back to amazon.com."""
    return AMAZON_DOMAINS.get((country or "").lower(), AMAZON_DOMAINS[DEFAULT_COUNTRY])


def build_product_url(asin: str, country: str = DEFAULT_COUNTRY) -> str:
    return f"https://www.{get_domain(country)}/dp/{asin}/"


def country_from_host(host: str) -> str:
    host = (host or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return COUNTRY_BY_DOMAIN.get(host, DEFAULT_COUNTRY)


def resolve_short_link(url: str) -> str:
    """Follow an Amazon short link to the product page URL."""
    try:
        response = requests.head(url, allow_redirects=True, timeout=SHORT_LINK_TIMEOUT)
        return response.url
    except requests.RequestException as e:
        logger.warning(f"Failed to resolve short link {url}: {e}")
        raise InvalidProductUrlError(f"Could not resolve short link: {url}") from e


def extract_asin(url: str) -> str:
    """
    Extract the ASIN from a product URL or bare ASIN.

    Raises:
        InvalidProductUrlError: If no ASIN can be found
    """
    value = (url or "").strip()
    if ASIN_RE.match(value):
        return value.upper()

    for pattern in ASIN_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1).upper()

    raise InvalidProductUrlError(f"Could not extract ASIN from URL: {url}")


def parse_product_url(url: str) -> Tuple[str, str, str]:
    """
    Normalise a submitted product URL.

    Returns:
        (asin, country, canonical product URL)

    Raises:
        InvalidProductUrlError: For non-Amazon URLs or URLs without an ASIN
    """
    value = (url or "").strip()
    if not value:
        raise InvalidProductUrlError("Invalid Amazon URL: empty")

    if ASIN_RE.match(value):
        asin = value.upper()
        return asin, DEFAULT_COUNTRY, build_product_url(asin)

    if "://" not in value:
        value = f"https://{value}"

    host = (urlparse(value).hostname or "").lower()
    if host in SHORT_LINK_HOSTS:
        value = resolve_short_link(value)
        host = (urlparse(value).hostname or "").lower()

    if "amazon." not in host:
        raise InvalidProductUrlError(f"Invalid Amazon URL: {url}")

    parsed = urlparse(value)
    target = parsed.path + (f"?{parsed.query}" if parsed.query else "")
    asin = extract_asin(target)
    country = country_from_host(host)
    return asin, country, build_product_url(asin, country)
