"""
Price analysis for completed products.

Runs decoupled from the review pipeline; a missing or failed price
analysis never affects a session's outcome.
"""

import logging
from typing import Any, Dict

from django.utils import timezone

from analyzer.exceptions import DataIntegrityError
from analyzer.models import PriceAnalysisStatus, Product
from analyzer.services.ai_client import AnalysisAIClient
from analyzer.services.ports import PriceAnalysisServicePort

logger = logging.getLogger(__name__)


class PriceAnalysisService(PriceAnalysisServicePort):
    """Price analysis through the AI Analysis Service."""

    def __init__(self, ai_client: AnalysisAIClient = None):
        self.ai_client = ai_client or AnalysisAIClient()

    def analyze_pricing(self, product: Product) -> Dict[str, Any]:
        """
        Analyse pricing once per product.

        Returns the stored analysis when one already exists.

        Raises:
            DataIntegrityError: If the product has no title
            AIClientError: On AI service failure (status set to failed)
        """
        if product.has_price_analysis:
            logger.info(f"Price analysis already available for {product.asin}")
            return product.price_analysis

        if not product.product_title:
            raise DataIntegrityError(f"Product title required for price analysis of {product.asin}")

        product.price_analysis_status = PriceAnalysisStatus.PROCESSING
        product.save(update_fields=["price_analysis_status"])

        try:
            result = self.ai_client.analyze_pricing(
                {
                    "asin": product.asin,
                    "country": product.country,
                    "title": product.product_title,
                    "description": product.product_description,
                    "amazon_rating": product.amazon_rating,
                    "total_reviews": product.total_reviews_on_amazon,
                }
            )
        except Exception:
            product.price_analysis_status = PriceAnalysisStatus.FAILED
            product.save(update_fields=["price_analysis_status"])
            raise

        product.price_analysis = result
        product.price_analysis_status = PriceAnalysisStatus.COMPLETED
        product.price_analyzed_at = timezone.now()
        product.save(
            update_fields=["price_analysis", "price_analysis_status", "price_analyzed_at"]
        )

        logger.info(f"Price analysis completed for {product.asin}")
        return result
