from django.core.management.base import BaseCommand, CommandError

from intake.models import QueueRecord
from intake.queue import retry_failed


class Command(BaseCommand):
    help = "Move failed intake records back to pending so the next drain picks them up."

    def add_arguments(self, parser):
        parser.add_argument("--id", dest="ids", action="append", default=[], help="Queue record UUID (repeatable).")
        parser.add_argument("--code", help="Only retry failures with this error code.")
        parser.add_argument("--all", action="store_true", help="Retry every failed record.")

    def handle(self, *args, **options):
        ids = options["ids"]
        code = options.get("code")
        if not ids and not code and not options["all"]:
            raise CommandError("Pass --id, --code or --all.")

        if code:
            queryset = QueueRecord.objects.filter(status=QueueRecord.Status.FAILED, error_code=code)
            if ids:
                queryset = queryset.filter(id__in=ids)
            ids = list(queryset.values_list("id", flat=True))
            if not ids:
                self.stdout.write(self.style.WARNING(f"No failed records with code {code}."))
                return

        count = retry_failed(ids=ids or None)
        self.stdout.write(self.style.SUCCESS(f"Reset {count} failed record(s) to pending."))
