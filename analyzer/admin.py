"""
Django admin configuration for Review Analyzer models.

Sessions are read-only. Products can be inspected and re-queued for
price analysis.
"""

from django.contrib import admin
from django.utils.html import format_html

from analyzer.models import AnalysisSession, Product


STATUS_COLORS = {
    "pending": "#ffc107",
    "pending_analysis": "#17a2b8",
    "processing": "#007bff",
    "completed": "#28a745",
    "failed": "#dc3545",
}


def _badge(status: str) -> str:
    color = STATUS_COLORS.get(status, "#6c757d")
    return format_html(
        '<span style="background-color: {}; color: white; '
        'padding: 2px 8px; border-radius: 4px;">{}</span>',
        color, status.replace("_", " ").title()
    )


@admin.register(AnalysisSession)
class AnalysisSessionAdmin(admin.ModelAdmin):
    """Read-only view of analysis session progress."""

    list_display = [
        "id_short",
        "asin",
        "status_badge",
        "progress_percentage",
        "current_message",
        "created_at",
        "duration_display",
    ]
    list_filter = [
        "status",
        ("created_at", admin.DateFieldListFilter),
    ]
    search_fields = ["asin", "id", "user_session"]
    readonly_fields = [
        "id",
        "user_session",
        "asin",
        "product_url",
        "status",
        "current_step",
        "total_steps",
        "progress_percentage",
        "current_message",
        "result",
        "error_message",
        "started_at",
        "completed_at",
        "created_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        ("Session", {
            "fields": ("id", "user_session", "asin", "product_url", "status"),
        }),
        ("Progress", {
            "fields": ("current_step", "total_steps", "progress_percentage", "current_message"),
        }),
        ("Timing", {
            "fields": ("created_at", "started_at", "completed_at"),
        }),
        ("Outcome", {
            "fields": ("result", "error_message"),
            "classes": ("collapse",),
        }),
    )

    def id_short(self, obj):
        """Display shortened session ID."""
        return str(obj.id)[:8]
    id_short.short_description = "Session ID"

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def duration_display(self, obj):
        """Display run duration in human-readable format."""
        if obj.duration_seconds:
            seconds = obj.duration_seconds
            if seconds < 60:
                return f"{seconds:.1f}s"
            return f"{seconds / 60:.1f}m"
        return "-"
    duration_display.short_description = "Duration"

    def has_add_permission(self, request):
        """Sessions are created by the API only."""
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for analyzed products."""

    list_display = [
        "asin",
        "country",
        "product_title",
        "status_badge",
        "grade",
        "fake_percentage",
        "review_count",
        "have_product_data",
        "price_analysis_status",
        "last_analyzed_at",
    ]
    list_filter = ["status", "country", "grade", "have_product_data", "price_analysis_status"]
    search_fields = ["asin", "product_title"]
    readonly_fields = [
        "id",
        "have_product_data",
        "first_analyzed_at",
        "last_analyzed_at",
        "price_analyzed_at",
        "product_data_scraped_at",
        "created_at",
        "updated_at",
    ]
    actions = ["queue_price_analysis", "queue_metadata_scrape"]

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def review_count(self, obj):
        return obj.review_count
    review_count.short_description = "Reviews"

    @admin.action(description="Queue price analysis for selected products")
    def queue_price_analysis(self, request, queryset):
        from analyzer.tasks import run_price_analysis

        queued = 0
        for product in queryset:
            if product.is_analyzed and not product.has_price_analysis:
                run_price_analysis.apply_async(args=[str(product.id)], queue="price-analysis")
                queued += 1

        self.message_user(request, f"Queued price analysis for {queued} product(s)")

    @admin.action(description="Scrape missing title/image for selected products")
    def queue_metadata_scrape(self, request, queryset):
        from analyzer.tasks import scrape_product_metadata

        queued = 0
        for product in queryset.filter(have_product_data=False):
            scrape_product_metadata.apply_async(args=[str(product.id)], queue="product-scraping")
            queued += 1

        self.message_user(request, f"Queued metadata scrape for {queued} product(s)")
