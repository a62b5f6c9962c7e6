from django.conf import settings
from django.core.management.base import BaseCommand

from intake.pipeline import drain_queue
from intake.queue import release_stale_claims


class Command(BaseCommand):
    help = "Claim pending intake records and write them into the inventory tables."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="Records per claim (default: INTAKE_DRAIN_LIMIT).")
        parser.add_argument(
            "--until-empty",
            action="store_true",
            help="Keep draining until a claim returns no records.",
        )
        parser.add_argument(
            "--release-stale",
            action="store_true",
            help="First return records stuck in processing after a crash to pending.",
        )

    def handle(self, *args, **options):
        limit = options["limit"] or settings.INTAKE_DRAIN_LIMIT

        if options["release_stale"]:
            released = release_stale_claims()
            self.stdout.write(self.style.WARNING(f"Released {released} stale claim(s)."))

        claimed = completed = failed = claim_lost = 0
        while True:
            summary = drain_queue(limit=limit)
            claimed += summary.claimed
            completed += summary.completed
            failed += summary.failed
            claim_lost += summary.claim_lost
            for failure in summary.failures:
                self.stdout.write(
                    self.style.ERROR(f"- {failure['device_id']} [{failure['code']}]: {failure['message']}")
                )
            if not options["until_empty"] or summary.claimed == 0:
                break

        style = self.style.SUCCESS if not (failed or claim_lost) else self.style.WARNING
        self.stdout.write(
            style(
                f"Drain complete. Claimed {claimed}, completed {completed}, "
                f"failed {failed}, claim lost {claim_lost}."
            )
        )
