"""Reversible removal of a device and its dependent rows.

Archival walks the hierarchy leaf-first (movements, inspection, attributes,
then the product) and snapshots every row into an ArchiveEntry before the
row is deleted. Restore replays one archive batch parent-first with the
original primary keys and timestamps. InventoryCount rows are aggregates
keyed by SKU and location; archival leaves them untouched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Count
from django.utils import timezone

from archival.models import ArchiveEntry
from common.errors import (
    ConflictError,
    IntakeError,
    NotFoundError,
    RecordValidationError,
    translate_database_error,
)
from common.utils import chunked, rebuild_instance, snapshot_instance
from inventory.models import DeviceAttributes, InspectionResult, MovementRecord, Product

logger = logging.getLogger("archival.services")

NUCLEAR_DELETE_CONFIRMATION = "archive-all-devices"

TABLE_PRODUCT = "product"
TABLE_DEVICE_ATTRIBUTES = "device_attributes"
TABLE_INSPECTION_RESULT = "inspection_result"
TABLE_MOVEMENT_RECORD = "movement_record"

# Leaf-first. Restore walks this list backwards.
ARCHIVE_ORDER = (
    (TABLE_MOVEMENT_RECORD, MovementRecord),
    (TABLE_INSPECTION_RESULT, InspectionResult),
    (TABLE_DEVICE_ATTRIBUTES, DeviceAttributes),
    (TABLE_PRODUCT, Product),
)
RESTORE_ORDER = tuple(reversed(ARCHIVE_ORDER))
ARCHIVED_TABLES = tuple(table for table, _ in ARCHIVE_ORDER)


@dataclass
class ArchiveSummary:
    archived: list[str] = field(default_factory=list)
    entries: int = 0
    tables: dict[str, int] = field(default_factory=dict)
    batch_ids: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    cancelled: bool = False

    def as_dict(self):
        return asdict(self)


@dataclass
class RestoreSummary:
    device_id: str
    batch_id: str
    restored: dict[str, int]

    def as_dict(self):
        return asdict(self)


def _rows_for(model, device_id):
    if model is Product:
        queryset = model.objects.filter(device_id=device_id)
    else:
        queryset = model.objects.filter(product_id=device_id)
    return list(queryset.select_for_update())


def _clean_reason(reason):
    reason = (reason or "").strip()
    if not reason:
        raise RecordValidationError("An archive reason is required.", {"reason": "This field is required."})
    return reason


def _archive_device(device_id, reason, actor):
    batch_id = uuid.uuid4()
    tables = {}
    step = "lock_product"
    try:
        with transaction.atomic():
            if not Product.objects.select_for_update().filter(device_id=device_id).exists():
                raise NotFoundError(f"No product exists for device {device_id}.", {"device_id": device_id})

            for table, model in ARCHIVE_ORDER:
                step = f"archive_{table}"
                rows = _rows_for(model, device_id)
                ArchiveEntry.objects.bulk_create(
                    [
                        ArchiveEntry(
                            original_table=table,
                            original_id=str(row.pk),
                            device_id=device_id,
                            archived_payload=snapshot_instance(row),
                            reason=reason,
                            batch_id=batch_id,
                            archived_by=actor,
                        )
                        for row in rows
                    ]
                )
                model.objects.filter(pk__in=[row.pk for row in rows]).delete()
                tables[table] = len(rows)
    except DatabaseError as exc:
        raise translate_database_error(exc, step=step) from exc

    logger.info(
        "device_archived",
        extra={"device_id": device_id, "batch_id": batch_id, "count": sum(tables.values()), "reason": reason},
    )
    return batch_id, tables


def _actor_or_none(actor):
    if actor is not None and getattr(actor, "is_authenticated", False):
        return actor
    return None


def archive(device_id, reason, *, actor=None) -> ArchiveSummary:
    """Archive one device in a single transaction; unknown ids raise NotFoundError."""
    reason = _clean_reason(reason)
    batch_id, tables = _archive_device(device_id, reason, _actor_or_none(actor))
    return ArchiveSummary(
        archived=[device_id],
        entries=sum(tables.values()),
        tables=tables,
        batch_ids=[str(batch_id)],
    )


def bulk_archive(device_ids, reason, *, actor=None, batch_size=None, cancel_event=None) -> ArchiveSummary:
    """Archive many devices, one transaction per device.

    A failing device is reported in `failed` and does not stop the run.
    When `cancel_event` is set the run stops before the next device; ids that
    were never attempted are listed in `skipped` and already archived
    devices stay archived.
    """
    reason = _clean_reason(reason)
    actor = _actor_or_none(actor)
    batch_size = batch_size or settings.ARCHIVE_BATCH_SIZE
    unique_ids = list(dict.fromkeys(str(device_id).strip() for device_id in device_ids if str(device_id).strip()))
    summary = ArchiveSummary()

    for position, chunk in enumerate(chunked(unique_ids, batch_size)):
        for index, device_id in enumerate(chunk):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                done = position * batch_size + index
                summary.skipped = unique_ids[done:]
                break
            try:
                batch_id, tables = _archive_device(device_id, reason, actor)
            except IntakeError as exc:
                summary.failed.append({"device_id": device_id, "code": exc.code, "reason": exc.message})
                continue
            summary.archived.append(device_id)
            summary.batch_ids.append(str(batch_id))
            summary.entries += sum(tables.values())
            for table, count in tables.items():
                summary.tables[table] = summary.tables.get(table, 0) + count
        if summary.cancelled:
            logger.warning(
                "bulk_archive_cancelled",
                extra={"count": len(summary.archived), "reason": f"skipped={len(summary.skipped)}"},
            )
            break

    logger.info(
        "bulk_archive_finished",
        extra={"count": len(summary.archived), "reason": f"failed={len(summary.failed)}"},
    )
    return summary


def restore(device_id, *, actor=None) -> RestoreSummary:
    """Re-materialize the most recent unconsumed archive batch for `device_id`."""
    actor = _actor_or_none(actor)
    step = "load_entries"
    try:
        with transaction.atomic():
            latest = (
                ArchiveEntry.objects.filter(device_id=device_id, restored_at__isnull=True)
                .order_by("-archived_at")
                .first()
            )
            if latest is None:
                raise NotFoundError(f"No archived data for device {device_id}.", {"device_id": device_id})
            if Product.objects.filter(device_id=device_id).exists():
                raise ConflictError(
                    f"Device {device_id} already has a live product; archive it before restoring.",
                    {"device_id": device_id},
                )

            entries = list(
                ArchiveEntry.objects.select_for_update().filter(batch_id=latest.batch_id, restored_at__isnull=True)
            )
            by_table = {}
            for entry in entries:
                by_table.setdefault(entry.original_table, []).append(entry)

            restored = {}
            for table, model in RESTORE_ORDER:
                step = f"restore_{table}"
                for entry in by_table.get(table, []):
                    rebuild_instance(model, entry.archived_payload).save(force_insert=True)
                restored[table] = len(by_table.get(table, []))

            step = "consume_entries"
            ArchiveEntry.objects.filter(id__in=[entry.id for entry in entries]).update(
                restored_at=timezone.now(),
                restored_by=actor,
            )
    except DatabaseError as exc:
        raise translate_database_error(exc, step=step) from exc

    logger.info(
        "device_restored",
        extra={"device_id": device_id, "batch_id": latest.batch_id, "count": sum(restored.values())},
    )
    return RestoreSummary(device_id=device_id, batch_id=str(latest.batch_id), restored=restored)


def nuclear_delete(reason, *, confirmation, actor=None, cancel_event=None) -> ArchiveSummary:
    """Archive every product. Requires the exact confirmation phrase."""
    if confirmation != NUCLEAR_DELETE_CONFIRMATION:
        raise RecordValidationError(
            "Confirmation phrase does not match.",
            {"confirmation": f'Type "{NUCLEAR_DELETE_CONFIRMATION}" to archive every device.'},
        )
    reason = _clean_reason(reason)
    device_ids = list(Product.objects.order_by("created_at").values_list("device_id", flat=True))
    logger.warning("nuclear_delete_started", extra={"count": len(device_ids), "reason": reason})
    return bulk_archive(device_ids, reason, actor=actor, cancel_event=cancel_event)


def purge_archived(device_id):
    """Irreversibly delete every archive entry of `device_id`."""
    with transaction.atomic():
        deleted, _ = ArchiveEntry.objects.filter(device_id=device_id).delete()
    if not deleted:
        raise NotFoundError(f"No archived data for device {device_id}.", {"device_id": device_id})
    logger.warning("archive_purged", extra={"device_id": device_id, "count": deleted})
    return deleted


def archive_stats():
    now = timezone.now()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = start_of_day - timedelta(days=start_of_day.weekday())
    start_of_month = start_of_day.replace(day=1)

    entries = ArchiveEntry.objects.all()
    active = entries.filter(restored_at__isnull=True)
    by_table = {table: 0 for table in ARCHIVED_TABLES}
    for row in active.order_by().values("original_table").annotate(total=Count("id")):
        by_table[row["original_table"]] = row["total"]

    return {
        "total": entries.count(),
        "active": active.count(),
        "restored": entries.filter(restored_at__isnull=False).count(),
        "devices": active.order_by().values("device_id").distinct().count(),
        "by_table": by_table,
        "today": entries.filter(archived_at__gte=start_of_day).count(),
        "this_week": entries.filter(archived_at__gte=start_of_week).count(),
        "this_month": entries.filter(archived_at__gte=start_of_month).count(),
    }
