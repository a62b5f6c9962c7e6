import csv
import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from intake.models import QueueRecord
from intake.pipeline import drain_queue
from intake.queue import enqueue


class Command(BaseCommand):
    help = "Enqueue device records from a JSON array or a CSV spreadsheet export."

    def add_arguments(self, parser):
        parser.add_argument("path", help="Path to a .json or .csv file.")
        parser.add_argument(
            "--format",
            choices=["json", "csv"],
            help="Input format (default: inferred from the file extension).",
        )
        parser.add_argument(
            "--source",
            choices=QueueRecord.Source.values,
            default=QueueRecord.Source.FILE,
            help="Source tag stored on each queue record.",
        )
        parser.add_argument("--batch-size", type=int, default=None, help="Rows per insert transaction.")
        parser.add_argument("--process", action="store_true", help="Drain the imported records immediately.")

    def _read(self, path, fmt):
        if fmt == "json":
            with path.open(encoding="utf-8") as handle:
                data = json.load(handle)
            if isinstance(data, dict):
                data = data.get("records") or data.get("devices") or []
            if not isinstance(data, list):
                raise CommandError("JSON input must be an array of records or an object with a 'records' array.")
            return data

        with path.open(encoding="utf-8-sig", newline="") as handle:
            return [
                {key.strip(): value for key, value in row.items() if key}
                for row in csv.DictReader(handle)
            ]

    def handle(self, *args, **options):
        path = Path(options["path"])
        if not path.is_file():
            raise CommandError(f"File not found: {path}")

        fmt = options.get("format") or path.suffix.lower().lstrip(".")
        if fmt not in {"json", "csv"}:
            raise CommandError("Cannot infer format; pass --format json or --format csv.")

        try:
            records = self._read(path, fmt)
        except (OSError, ValueError) as exc:
            raise CommandError(f"Could not read {path}: {exc}") from exc

        result = enqueue(records, source=options["source"], batch_size=options["batch_size"])
        self.stdout.write(
            self.style.SUCCESS(f"Batch {result.batch_id}: accepted {result.accepted}, rejected {len(result.rejected)}.")
        )
        for rejection in result.rejected:
            self.stdout.write(self.style.WARNING(f"- row {rejection['index']}: {rejection['reason']}"))

        if options["process"] and result.accepted:
            summary = drain_queue(limit=result.accepted)
            self.stdout.write(
                self.style.SUCCESS(f"Processed {summary.claimed}: completed {summary.completed}, failed {summary.failed}.")
            )
