"""
Django models for the Review Analyzer.

Models: AnalysisSession, Product

AnalysisSession is the persisted progress record a client polls while a
pipeline run is in flight. Product holds scraped reviews and analysis
results, keyed by (asin, country).
"""

import logging
import re
import uuid
from typing import Any, Dict, Optional

from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)


SLUG_MAX_LENGTH = 60


class SessionStatus(models.TextChoices):
    """Status of an analysis session."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


TERMINAL_SESSION_STATUSES = (SessionStatus.COMPLETED, SessionStatus.FAILED)


class ProductStatus(models.TextChoices):
    """Analysis status of a product record."""

    PENDING = "pending", "Pending"
    PENDING_ANALYSIS = "pending_analysis", "Pending Analysis"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PriceAnalysisStatus(models.TextChoices):
    """Status of the decoupled price analysis."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


def compute_have_product_data(title: Optional[str], image_url: Optional[str]) -> bool:
    """Product metadata is usable only when both title and image are present."""
    return bool(title and title.strip()) and bool(image_url and image_url.strip())


def slugify_title(title: Optional[str], max_length: int = SLUG_MAX_LENGTH) -> Optional[str]:
    """
    Build a URL slug from a product title.

    Long titles are cut at max_length and the trailing partial word is
    dropped. Returns None when nothing usable remains.
    """
    if not title:
        return None

    slug = title.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s-]+", "-", slug)
    slug = slug.strip("-")

    if len(slug) > max_length:
        slug = slug[:max_length]
        if "-" in slug:
            slug = slug[: slug.rfind("-")]
        slug = slug.strip("-")

    return slug or None


class AnalysisSession(models.Model):
    """
    Progress and status of one client-visible analysis run.

    States: pending -> processing -> {completed, failed}. Completed and
    failed are terminal; transition methods refuse to move a terminal
    session and return False instead.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_session = models.CharField(max_length=255, blank=True, db_index=True)
    asin = models.CharField(max_length=10, blank=True, db_index=True)
    product_url = models.URLField(max_length=2000)

    # Status
    status = models.CharField(
        max_length=20, choices=SessionStatus.choices, default=SessionStatus.PENDING
    )

    # Progress
    current_step = models.PositiveSmallIntegerField(default=0)
    total_steps = models.PositiveSmallIntegerField(default=8)
    progress_percentage = models.FloatField(default=0.0)
    current_message = models.CharField(max_length=255, default="Queued for analysis...")

    # Results
    result = models.JSONField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)

    # Timing
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "analysis_sessions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["user_session", "asin", "status"],
                name="analysis_se_user_se_3f1c2a_idx",
            ),
            models.Index(
                fields=["status", "created_at"], name="analysis_se_status_8b7d4e_idx"
            ),
        ]

    def __str__(self):
        return f"Session {self.id} - {self.asin or self.product_url} ({self.status})"

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == SessionStatus.FAILED

    @property
    def is_processing(self) -> bool:
        """Pending sessions count as processing from the client's view."""
        return self.status in (SessionStatus.PENDING, SessionStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES

    @property
    def duration_seconds(self):
        """Calculate run duration."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def _refresh(self) -> bool:
        """Reload persisted state; False if the row is gone."""
        try:
            self.refresh_from_db()
        except AnalysisSession.DoesNotExist:
            logger.warning(f"Analysis session {self.id} no longer exists")
            return False
        return True

    def _refuse_if_terminal(self, action: str) -> bool:
        if self.is_terminal:
            logger.info(
                f"Ignoring {action} for session {self.id}: already {self.status}"
            )
            return True
        return False

    def mark_processing(self) -> bool:
        """Move to processing and record the start time."""
        if not self._refresh() or self._refuse_if_terminal("mark_processing"):
            return False

        self.status = SessionStatus.PROCESSING
        if self.started_at is None:
            self.started_at = timezone.now()
        self.save(update_fields=["status", "started_at", "updated_at"])
        return True

    def update_progress(self, step: int, percentage: float, message: str) -> bool:
        """
        Publish progress.

        Re-reads the row immediately before writing so a concurrent
        cancellation is seen; this narrows but does not close the race
        (last writer wins). Callers keep percentage non-decreasing.

        Returns:
            False if the session is gone or terminal and nothing was written.
        """
        if not self._refresh() or self._refuse_if_terminal("update_progress"):
            return False

        self.current_step = step
        self.progress_percentage = percentage
        self.current_message = message
        self.save(
            update_fields=[
                "current_step",
                "progress_percentage",
                "current_message",
                "updated_at",
            ]
        )

        logger.debug(
            f"Session {self.id} progress: step {step}/{self.total_steps} "
            f"{percentage:.0f}% - {message}"
        )
        return True

    def record_retryable_error(self, message: str) -> bool:
        """Store a sanitized error while the run stays eligible for retry."""
        if not self._refresh() or self._refuse_if_terminal("record_retryable_error"):
            return False

        self.error_message = message
        self.save(update_fields=["error_message", "updated_at"])
        return True

    def mark_completed(self, result: Dict[str, Any]) -> bool:
        """Finish successfully with the final result payload."""
        if not self._refresh() or self._refuse_if_terminal("mark_completed"):
            return False

        self.status = SessionStatus.COMPLETED
        self.current_step = self.total_steps
        self.progress_percentage = 100.0
        self.current_message = "Analysis complete!"
        self.result = result
        self.error_message = None
        self.completed_at = timezone.now()
        self.save(
            update_fields=[
                "status",
                "current_step",
                "progress_percentage",
                "current_message",
                "result",
                "error_message",
                "completed_at",
                "updated_at",
            ]
        )

        logger.info(f"Session {self.id} completed")
        return True

    def mark_failed(self, message: str) -> bool:
        """Finish with a sanitized, user-facing error message."""
        if not self._refresh() or self._refuse_if_terminal("mark_failed"):
            return False

        self.status = SessionStatus.FAILED
        self.error_message = message
        self.result = None
        self.completed_at = timezone.now()
        self.save(
            update_fields=[
                "status",
                "error_message",
                "result",
                "completed_at",
                "updated_at",
            ]
        )

        logger.info(f"Session {self.id} failed: {message}")
        return True


class Product(models.Model):
    """
    Scraped reviews and analysis results for one Amazon product.

    Uniquely keyed by (asin, country). Created on first reference and
    updated across the pipeline's lifetime; never deleted by the core.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    asin = models.CharField(max_length=10, db_index=True)
    country = models.CharField(max_length=5, default="us")
    product_url = models.URLField(max_length=2000, blank=True)

    status = models.CharField(
        max_length=20, choices=ProductStatus.choices, default=ProductStatus.PENDING
    )

    # Scraped data
    reviews = models.JSONField(default=list, blank=True)
    product_description = models.TextField(blank=True)
    total_reviews_on_amazon = models.PositiveIntegerField(null=True, blank=True)

    # Product metadata
    product_title = models.CharField(max_length=500, null=True, blank=True)
    product_image_url = models.URLField(max_length=2000, null=True, blank=True)
    have_product_data = models.BooleanField(default=False)
    product_data_scraped_at = models.DateTimeField(null=True, blank=True)

    # Analysis results
    openai_result = models.JSONField(null=True, blank=True)
    detailed_analysis = models.JSONField(null=True, blank=True)
    fake_percentage = models.FloatField(null=True, blank=True)
    grade = models.CharField(max_length=1, null=True, blank=True)
    amazon_rating = models.FloatField(null=True, blank=True)
    adjusted_rating = models.FloatField(null=True, blank=True)
    explanation = models.TextField(null=True, blank=True)
    first_analyzed_at = models.DateTimeField(null=True, blank=True)
    last_analyzed_at = models.DateTimeField(null=True, blank=True)

    # Price analysis
    price_analysis = models.JSONField(null=True, blank=True)
    price_analysis_status = models.CharField(
        max_length=20,
        choices=PriceAnalysisStatus.choices,
        default=PriceAnalysisStatus.PENDING,
    )
    price_analyzed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["asin", "country"], name="unique_asin_country"),
        ]
        indexes = [
            models.Index(
                fields=["status", "last_analyzed_at"], name="products_status_5a9e0c_idx"
            ),
        ]

    def __str__(self):
        return f"{self.asin} ({self.country}) - {self.status}"

    def save(self, *args, **kwargs):
        # have_product_data is always derived from the current title/image
        self.have_product_data = compute_have_product_data(
            self.product_title, self.product_image_url
        )
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = set(update_fields) | {"have_product_data", "updated_at"}
        super().save(*args, **kwargs)

    @property
    def review_count(self) -> int:
        return len(self.reviews or [])

    @property
    def is_analyzed(self) -> bool:
        """Completed with grade, fake percentage and at least one review."""
        return (
            self.status == ProductStatus.COMPLETED
            and self.grade is not None
            and self.fake_percentage is not None
            and self.review_count > 0
        )

    @property
    def has_price_analysis(self) -> bool:
        return (
            self.price_analysis_status == PriceAnalysisStatus.COMPLETED
            and bool(self.price_analysis)
        )

    @property
    def slug(self) -> Optional[str]:
        return slugify_title(self.product_title)

    @property
    def seo_url(self) -> str:
        slug = self.slug
        if slug:
            return f"/amazon/{self.asin}/{slug}"
        return f"/amazon/{self.asin}"

    def mark_analysis_processing(self):
        """Move to processing unless a completed analysis already exists."""
        if self.status == ProductStatus.COMPLETED:
            logger.debug(f"Product {self.asin} already completed, status kept")
            return
        self.status = ProductStatus.PROCESSING
        self.save(update_fields=["status"])

    def mark_analysis_completed(self):
        now = timezone.now()
        self.status = ProductStatus.COMPLETED
        if self.first_analyzed_at is None:
            self.first_analyzed_at = now
        self.last_analyzed_at = now
        self.save(update_fields=["status", "first_analyzed_at", "last_analyzed_at"])

    def to_snapshot(self) -> Dict[str, Any]:
        """Serializable view stored in a completed session's result."""
        return {
            "asin": self.asin,
            "country": self.country,
            "product_title": self.product_title,
            "product_image_url": self.product_image_url,
            "have_product_data": self.have_product_data,
            "fake_percentage": self.fake_percentage,
            "grade": self.grade,
            "amazon_rating": self.amazon_rating,
            "adjusted_rating": self.adjusted_rating,
            "explanation": self.explanation,
            "total_reviews_on_amazon": self.total_reviews_on_amazon,
            "reviews_analyzed": self.review_count,
            "seo_url": self.seo_url,
            "last_analyzed_at": (
                self.last_analyzed_at.isoformat() if self.last_analyzed_at else None
            ),
        }
