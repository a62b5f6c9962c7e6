from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from intake.queue import prune_terminal


class Command(BaseCommand):
    help = "Delete completed and failed intake records older than the retention window."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Retention in days (default: INTAKE_QUEUE_RETENTION_DAYS).",
        )

    def handle(self, *args, **options):
        days = options["days"] if options["days"] is not None else settings.INTAKE_QUEUE_RETENTION_DAYS
        if days < 1:
            raise CommandError("--days must be at least 1.")
        deleted = prune_terminal(older_than_days=days)
        self.stdout.write(self.style.SUCCESS(f"Pruned {deleted} queue record(s) older than {days} day(s)."))
