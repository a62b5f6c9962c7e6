"""Durable intake queue backed by the QueueRecord table.

The claim is the only point where concurrent drainers coordinate: a single
conditional UPDATE flips `pending` rows to `processing` and stamps them with
a per-call token, so each row is handed to exactly one caller.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from django.conf import settings
from django.db import connection, transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from common.errors import RETRYABLE_CODES, IntakeError
from common.utils import chunked
from intake.models import QueueProcessingLog, QueueRecord
from intake.normalizer import normalize_record

logger = logging.getLogger("intake.queue")


@dataclass
class EnqueueResult:
    accepted: int = 0
    rejected: list[dict] = field(default_factory=list)
    batch_id: str = ""

    def as_dict(self):
        return {"accepted": self.accepted, "rejected": self.rejected, "batch_id": self.batch_id}


def log_action(queue_record, action, *, message="", error_code="", duration_ms=None):
    return QueueProcessingLog.objects.create(
        queue_record_id=queue_record.id,
        device_id=queue_record.device_id,
        action=action,
        message=message,
        error_code=error_code,
        duration_ms=duration_ms,
    )


def enqueue(records, *, source=QueueRecord.Source.API, batch_size=None):
    """Validate and persist raw records as `pending` rows.

    Records without a device identifier are rejected individually; the rest
    of the batch is still inserted. Each chunk of `batch_size` rows is one
    transaction, so the accepted/rejected totals do not depend on chunking.
    """
    batch_size = batch_size or settings.INTAKE_BATCH_SIZE
    batch_id = uuid.uuid4()
    result = EnqueueResult(batch_id=str(batch_id))

    indexed = list(enumerate(records))
    for chunk in chunked(indexed, batch_size):
        rows = []
        for index, raw in chunk:
            try:
                normalized = normalize_record(raw)
            except IntakeError as exc:
                result.rejected.append({"index": index, "reason": exc.message, "code": exc.code})
                continue
            rows.append(
                QueueRecord(
                    raw_payload=raw,
                    device_id=normalized.device_id,
                    source=source,
                    batch_id=batch_id,
                )
            )
        if rows:
            with transaction.atomic():
                QueueRecord.objects.bulk_create(rows)
            result.accepted += len(rows)

    logger.info(
        "queue_records_enqueued",
        extra={"batch_id": result.batch_id, "count": result.accepted, "source": source},
    )
    if result.rejected:
        logger.warning(
            "queue_records_rejected",
            extra={"batch_id": result.batch_id, "count": len(result.rejected), "source": source},
        )
    return result


def claim_pending(limit):
    """Atomically move up to `limit` pending rows to processing for this caller."""
    if limit <= 0:
        return []

    token = uuid.uuid4()
    now = timezone.now()
    with transaction.atomic():
        candidates = QueueRecord.objects.filter(status=QueueRecord.Status.PENDING).filter(
            Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=now)
        )
        if connection.features.has_select_for_update_skip_locked:
            candidates = candidates.select_for_update(skip_locked=True)
        candidate_ids = list(candidates.order_by("created_at").values_list("id", flat=True)[:limit])
        if not candidate_ids:
            return []

        QueueRecord.objects.filter(id__in=candidate_ids, status=QueueRecord.Status.PENDING).update(
            status=QueueRecord.Status.PROCESSING,
            claim_token=token,
            claimed_at=now,
            attempts=F("attempts") + 1,
            updated_at=now,
        )
        claimed = list(QueueRecord.objects.filter(claim_token=token).order_by("created_at"))
        QueueProcessingLog.objects.bulk_create(
            [
                QueueProcessingLog(
                    queue_record_id=record.id,
                    device_id=record.device_id,
                    action=QueueProcessingLog.Action.CLAIMED,
                    message=f"attempt {record.attempts}",
                )
                for record in claimed
            ]
        )

    if claimed:
        logger.info("queue_records_claimed", extra={"count": len(claimed)})
    return claimed


def _owned(queue_record_id, claim_token):
    queryset = QueueRecord.objects.filter(id=queue_record_id, status=QueueRecord.Status.PROCESSING)
    if claim_token is not None:
        queryset = queryset.filter(claim_token=claim_token)
    return queryset


def mark_completed(queue_record_id, *, claim_token=None, duration_ms=None):
    """Move a processing row to completed; False when it is not processing or the claim was lost."""
    now = timezone.now()
    updated = _owned(queue_record_id, claim_token).update(
        status=QueueRecord.Status.COMPLETED,
        error_code="",
        error_message="",
        processed_at=now,
        next_attempt_at=None,
        updated_at=now,
    )
    if not updated:
        return False
    record = QueueRecord.objects.get(id=queue_record_id)
    log_action(record, QueueProcessingLog.Action.COMPLETED, duration_ms=duration_ms)
    return True


def _next_attempt_for(record, error_code):
    if not settings.INTAKE_AUTO_RETRY or error_code not in RETRYABLE_CODES:
        return None
    if record.attempts >= settings.INTAKE_MAX_ATTEMPTS:
        return None
    backoff = settings.INTAKE_RETRY_BACKOFF_SECONDS * (2 ** max(record.attempts - 1, 0))
    return timezone.now() + timedelta(seconds=backoff)


def mark_failed(queue_record_id, message, *, code="processing_error", claim_token=None, duration_ms=None):
    record = _owned(queue_record_id, claim_token).first()
    if record is None:
        return False

    now = timezone.now()
    updated = _owned(queue_record_id, claim_token).update(
        status=QueueRecord.Status.FAILED,
        error_code=code,
        error_message=message,
        processed_at=now,
        next_attempt_at=_next_attempt_for(record, code),
        updated_at=now,
    )
    if not updated:
        return False
    log_action(
        record,
        QueueProcessingLog.Action.FAILED,
        message=message,
        error_code=code,
        duration_ms=duration_ms,
    )
    return True


def stats():
    counts = {
        row["status"]: row["total"]
        for row in QueueRecord.objects.order_by().values("status").annotate(total=Count("id"))
    }
    summary = {status: counts.get(status, 0) for status in QueueRecord.Status.values}
    summary["total"] = sum(summary.values())
    return summary


def _reset_to_pending(queryset, *, message):
    now = timezone.now()
    records = list(queryset)
    if not records:
        return 0
    ids = [record.id for record in records]
    updated = QueueRecord.objects.filter(id__in=ids, status=QueueRecord.Status.FAILED).update(
        status=QueueRecord.Status.PENDING,
        claim_token=None,
        claimed_at=None,
        next_attempt_at=None,
        processed_at=None,
        updated_at=now,
    )
    QueueProcessingLog.objects.bulk_create(
        [
            QueueProcessingLog(
                queue_record_id=record.id,
                device_id=record.device_id,
                action=QueueProcessingLog.Action.RETRIED,
                message=message,
                error_code=record.error_code,
            )
            for record in records
        ]
    )
    return updated


def retry_failed(ids=None):
    """Operator reset of failed rows back to pending; all failed rows when `ids` is None."""
    queryset = QueueRecord.objects.filter(status=QueueRecord.Status.FAILED)
    if ids is not None:
        queryset = queryset.filter(id__in=list(ids))
    with transaction.atomic():
        count = _reset_to_pending(queryset, message="manual retry")
    logger.info("queue_records_retried", extra={"count": count, "reason": "manual"})
    return count


def requeue_due_failures():
    """Automatic retry of retryable failures whose backoff has elapsed."""
    if not settings.INTAKE_AUTO_RETRY:
        return 0
    queryset = QueueRecord.objects.filter(
        status=QueueRecord.Status.FAILED,
        error_code__in=RETRYABLE_CODES,
        attempts__lt=settings.INTAKE_MAX_ATTEMPTS,
        next_attempt_at__isnull=False,
        next_attempt_at__lte=timezone.now(),
    )
    with transaction.atomic():
        count = _reset_to_pending(queryset, message="automatic retry")
    if count:
        logger.info("queue_records_retried", extra={"count": count, "reason": "auto"})
    return count


def release_stale_claims(older_than=None):
    """Return rows stuck in processing (a drainer crashed mid-batch) to pending."""
    if older_than is None:
        older_than = timedelta(seconds=settings.INTAKE_STALE_CLAIM_SECONDS)
    cutoff = timezone.now() - older_than
    with transaction.atomic():
        stale = list(QueueRecord.objects.filter(status=QueueRecord.Status.PROCESSING, claimed_at__lt=cutoff))
        if not stale:
            return 0
        released = QueueRecord.objects.filter(
            id__in=[record.id for record in stale], status=QueueRecord.Status.PROCESSING
        ).update(status=QueueRecord.Status.PENDING, claim_token=None, claimed_at=None, updated_at=timezone.now())
        for record in stale:
            log_action(record, QueueProcessingLog.Action.RELEASED, message="stale claim released")
    logger.warning("queue_stale_claims_released", extra={"count": released})
    return released


def prune_terminal(older_than_days=None):
    """Delete completed/failed rows older than the retention window; logs survive."""
    days = older_than_days if older_than_days is not None else settings.INTAKE_QUEUE_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)
    queryset = QueueRecord.objects.filter(
        status__in=[QueueRecord.Status.COMPLETED, QueueRecord.Status.FAILED],
        updated_at__lt=cutoff,
    )
    with transaction.atomic():
        records = list(queryset.only("id", "device_id", "status"))
        QueueProcessingLog.objects.bulk_create(
            [
                QueueProcessingLog(
                    queue_record_id=record.id,
                    device_id=record.device_id,
                    action=QueueProcessingLog.Action.PRUNED,
                    message=f"pruned {record.status} record",
                )
                for record in records
            ]
        )
        deleted, _ = QueueRecord.objects.filter(id__in=[record.id for record in records]).delete()
    logger.info("queue_records_pruned", extra={"count": deleted})
    return deleted
