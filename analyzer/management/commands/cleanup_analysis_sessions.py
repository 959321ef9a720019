"""
Management command to delete old analysis sessions.

Usage:
    python manage.py cleanup_analysis_sessions
    python manage.py cleanup_analysis_sessions --hours=48
    python manage.py cleanup_analysis_sessions --dry-run
"""

import logging

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from analyzer.services.sessions import cleanup_sessions

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete analysis sessions past retention."""

    help = 'Delete analysis sessions of any status older than the retention window'

    def add_arguments(self, parser):
        parser.add_argument(
            '--hours',
            type=int,
            default=None,
            help=(
                'Delete sessions older than this many hours '
                f'(default: {settings.ANALYZER_SESSION_RETENTION_HOURS})'
            ),
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only count matching sessions, delete nothing',
        )

    def handle(self, *args, **options):
        hours = options['hours']
        dry_run = options['dry_run']

        if hours is not None and hours < 0:
            raise CommandError('--hours must be a non-negative integer')

        if hours is None:
            hours = settings.ANALYZER_SESSION_RETENTION_HOURS

        count = cleanup_sessions(hours=hours, dry_run=dry_run)

        if dry_run:
            self.stdout.write(self.style.WARNING(
                f'Dry run: {count} session(s) older than {hours}h would be deleted'
            ))
            return

        self.stdout.write(self.style.SUCCESS(
            f'Deleted {count} session(s) older than {hours}h'
        ))
