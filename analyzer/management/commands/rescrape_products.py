"""
Management command to re-dispatch review scrapes for products without reviews.

Products end up without reviews when a scrape job timed out or the
provider returned nothing. This queues a fresh trigger_scrape for each.

Usage:
    python manage.py rescrape_products
    python manage.py rescrape_products --limit=20
    python manage.py rescrape_products --dry-run
"""

import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from analyzer.models import Product
from analyzer.tasks import trigger_scrape

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Queue review scrapes for products that have no reviews."""

    help = 'Re-dispatch review scrapes for products with no reviews'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=50,
            help='Maximum number of products to queue (default: 50)',
        )
        parser.add_argument(
            '--older-than-hours',
            type=int,
            default=24,
            help='Only products not updated for this many hours (default: 24)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List matching products without queueing scrapes',
        )

    def handle(self, *args, **options):
        limit = options['limit']
        dry_run = options['dry_run']
        cutoff = timezone.now() - timedelta(hours=options['older_than_hours'])

        if dry_run:
            self.stdout.write(self.style.WARNING('Running in dry-run mode - no scrapes will be queued'))

        candidates = []
        for product in Product.objects.filter(updated_at__lt=cutoff).order_by('updated_at').iterator():
            if not product.reviews:
                candidates.append(product)
                if len(candidates) >= limit:
                    break

        if not candidates:
            self.stdout.write(self.style.SUCCESS('No products without reviews'))
            return

        self.stdout.write(f'Found {len(candidates)} product(s) without reviews')

        queued = 0
        for product in candidates:
            if dry_run:
                self.stdout.write(f'  Would rescrape {product.asin} ({product.country})')
                continue

            trigger_scrape.apply_async(args=[product.asin, product.country], queue='scraping')
            queued += 1
            logger.info(f"Queued rescrape for {product.asin} ({product.country})")

        if not dry_run:
            self.stdout.write(self.style.SUCCESS(f'Queued {queued} rescrape(s)'))
