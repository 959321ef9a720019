"""
Contracts the orchestration layer depends on.

Jobs and the pipeline only talk to these interfaces, so tests can hand in
fakes without reaching into service internals.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence


class ScraperService(ABC):
    """Asynchronous review scraping provider."""

    @abstractmethod
    def trigger(self, urls: Sequence[str]) -> Optional[str]:
        """Start a provider job. Returns the job id, or None on failure."""

    @abstractmethod
    def get_progress(self, job_id: str) -> Dict[str, Any]:
        """Return {"status": ready|running|failed|error|unknown, "total_rows": int}."""

    @abstractmethod
    def fetch_data(self, job_id: str) -> List[Dict[str, Any]]:
        """Download raw provider records. Empty list when nothing is available."""

    @abstractmethod
    def transform(self, records: List[Dict[str, Any]], asin: str) -> Dict[str, Any]:
        """
        Map raw records to the canonical payload:
        {reviews, description, total_reviews, product_name, product_image_url}.
        """

    def cancel_job(self, job_id: str) -> bool:
        """Best-effort cancel of a provider job. Returns True if confirmed."""
        return False


class AnalysisService(ABC):
    """Review analysis steps driven by the pipeline."""

    @abstractmethod
    def check_product_exists(self, product_url: str) -> Dict[str, Any]:
        """
        Return {asin, country, product_url, exists, asin_data,
        needs_fetching, needs_openai}.
        """

    @abstractmethod
    def fetch_reviews(self, asin: str, country: str, product_url: str):
        """Scrape reviews and persist them. Returns the Product record."""

    @abstractmethod
    def analyze_with_llm(self, product):
        """Score reviews with the AI service. Returns the updated Product."""

    @abstractmethod
    def calculate_final_metrics(self, product) -> Dict[str, Any]:
        """Compute grade, fake percentage and ratings. Returns the analysis result."""


class PriceAnalysisServicePort(ABC):
    """Decoupled price analysis."""

    @abstractmethod
    def analyze_pricing(self, product) -> Dict[str, Any]:
        """Run price analysis for an analyzed product."""


class ProductMetadataScraper(ABC):
    """Synchronous scrape of product title and image."""

    @abstractmethod
    def scrape(self, asin: str, country: str) -> Dict[str, Optional[str]]:
        """Return {"title": ..., "image_url": ...}; values may be None."""


class PushChannel(ABC):
    """Outbound operator notification transport."""

    @abstractmethod
    def send(self, payload: Dict[str, Any]) -> bool:
        """Deliver one message. Returns True on confirmed delivery."""


class JobScheduler(ABC):
    """Enqueues the next phase of the scrape chain."""

    @abstractmethod
    def schedule_poll(self, asin: str, country: str, job_id: str, attempt: int, delay: int) -> None:
        pass

    @abstractmethod
    def schedule_process(self, asin: str, country: str, job_id: str) -> None:
        pass
