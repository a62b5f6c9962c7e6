from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field

from django.conf import settings
from django.db import DatabaseError, transaction

from common.errors import ConflictError, IntakeError, ProcessingError, translate_database_error
from intake import queue
from intake.normalizer import NormalizedRecord, normalize_record
from inventory.matching import match_sku
from inventory.services import (
    append_movement,
    record_sku_match,
    resolve_location,
    upsert_device_attributes,
    upsert_inspection_result,
    upsert_inventory_count,
    upsert_product,
)
from inventory.sku import generate_sku, is_partial_sku

logger = logging.getLogger("intake.pipeline")

STEP_LOCATION = "resolve_location"
STEP_SKU = "derive_sku"
STEP_PRODUCT = "upsert_product"
STEP_DEVICE = "upsert_device_details"
STEP_INVENTORY = "upsert_inventory_count"
STEP_MOVEMENT = "append_movement"
STEP_COMPLETE = "mark_completed"

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_CLAIM_LOST = "claim_lost"


@dataclass
class ProcessingResult:
    device_id: str
    sku: str
    generated_sku: str
    created: bool
    needs_review: bool
    match_status: str | None = None


@dataclass
class ProcessingOutcome:
    queue_record_id: str
    status: str
    device_id: str
    sku: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: float | None = None


@dataclass
class DrainSummary:
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    claim_lost: int = 0
    retried: int = 0
    failures: list[dict] = field(default_factory=list)

    def as_dict(self):
        return asdict(self)


def process_record(record: NormalizedRecord, *, queue_record=None, started=None) -> ProcessingResult:
    """Write one normalized record across the inventory tables.

    The SKU (and the optional SKU-master lookup) is resolved before the
    transaction opens so no row locks are held during the external call.
    All writes then happen in one atomic block, parents before children:
    location, product, device attributes and inspection, inventory count,
    movement. When `queue_record` is given its completion is the last write
    of the same transaction and requires the claim token it was handed out
    with; a lost claim raises ConflictError and rolls the record back.
    """
    queue_record_id = queue_record.id if queue_record is not None else None
    step = STEP_SKU
    try:
        generated = generate_sku(record.brand, record.model, record.storage, record.color, record.carrier)
        decision = match_sku(
            generated,
            brand=record.brand,
            model=record.model,
            storage=record.storage,
            color=record.color,
            carrier=record.carrier,
        )
    except IntakeError:
        raise
    except Exception as exc:
        raise ProcessingError(f"SKU matcher failed: {exc}", {"step": step, "error": str(exc)}) from exc

    sku = decision.sku if decision is not None else generated
    needs_review = is_partial_sku(sku) or (decision is not None and decision.needs_review)

    try:
        with transaction.atomic():
            step = STEP_LOCATION
            location = resolve_location(record.location_name)

            step = STEP_PRODUCT
            product, created = upsert_product(
                record.device_id,
                sku=sku,
                generated_sku=generated,
                brand=record.brand,
                display_name=record.display_name,
                needs_review=needs_review,
            )

            step = STEP_DEVICE
            upsert_device_attributes(product, record, location)
            upsert_inspection_result(product, record)
            if decision is not None:
                record_sku_match(record.device_id, generated, decision)

            step = STEP_INVENTORY
            upsert_inventory_count(sku, location, record.quantity, record.working)

            step = STEP_MOVEMENT
            append_movement(
                product,
                location,
                queue_record_id=queue_record_id,
                reason="intake" if created else "intake update",
            )

            if queue_record is not None:
                step = STEP_COMPLETE
                completed = queue.mark_completed(
                    queue_record.id,
                    claim_token=queue_record.claim_token,
                    duration_ms=_elapsed_ms(started) if started is not None else None,
                )
                if not completed:
                    raise ConflictError(
                        f"Queue record {queue_record.id} is no longer claimed by this drainer.",
                        {"step": step, "queue_record_id": str(queue_record.id)},
                    )
    except DatabaseError as exc:
        raise translate_database_error(exc, step=step) from exc

    return ProcessingResult(
        device_id=record.device_id,
        sku=sku,
        generated_sku=generated,
        created=created,
        needs_review=needs_review,
        match_status=decision.status if decision is not None else None,
    )


def _elapsed_ms(started):
    return round((time.perf_counter() - started) * 1000, 2)


def process_queue_record(queue_record) -> ProcessingOutcome:
    started = time.perf_counter()
    try:
        record = normalize_record(queue_record.raw_payload)
        result = process_record(record, queue_record=queue_record, started=started)
    except IntakeError as exc:
        error = exc
    except Exception as exc:
        logger.exception(
            "queue_record_crashed",
            extra={"queue_record_id": queue_record.id, "device_id": queue_record.device_id},
        )
        error = ProcessingError(f"Unexpected error: {exc}")
    else:
        duration_ms = _elapsed_ms(started)
        logger.info(
            "queue_record_completed",
            extra={
                "queue_record_id": queue_record.id,
                "device_id": result.device_id,
                "sku": result.sku,
                "duration_ms": duration_ms,
            },
        )
        return ProcessingOutcome(
            queue_record_id=str(queue_record.id),
            status=OUTCOME_COMPLETED,
            device_id=result.device_id,
            sku=result.sku,
            duration_ms=duration_ms,
        )

    duration_ms = _elapsed_ms(started)
    marked = queue.mark_failed(
        queue_record.id,
        error.message,
        code=error.code,
        claim_token=queue_record.claim_token,
        duration_ms=duration_ms,
    )
    if not marked:
        # Released and possibly re-claimed elsewhere; the row is not ours to touch.
        logger.warning(
            "queue_record_claim_lost",
            extra={"queue_record_id": queue_record.id, "device_id": queue_record.device_id, "error_code": error.code},
        )
        return ProcessingOutcome(
            queue_record_id=str(queue_record.id),
            status=OUTCOME_CLAIM_LOST,
            device_id=queue_record.device_id,
            error_code=error.code,
            error_message=error.message,
            duration_ms=duration_ms,
        )

    logger.warning(
        "queue_record_failed",
        extra={
            "queue_record_id": queue_record.id,
            "device_id": queue_record.device_id,
            "error_code": error.code,
            "reason": error.message,
            "duration_ms": duration_ms,
        },
    )
    return ProcessingOutcome(
        queue_record_id=str(queue_record.id),
        status=OUTCOME_FAILED,
        device_id=queue_record.device_id,
        error_code=error.code,
        error_message=error.message,
        duration_ms=duration_ms,
    )


def drain_queue(limit=None) -> DrainSummary:
    """Claim up to `limit` pending rows and process each one independently."""
    limit = limit or settings.INTAKE_DRAIN_LIMIT
    summary = DrainSummary(retried=queue.requeue_due_failures())

    claimed = queue.claim_pending(limit)
    summary.claimed = len(claimed)
    for queue_record in claimed:
        outcome = process_queue_record(queue_record)
        if outcome.status == OUTCOME_COMPLETED:
            summary.completed += 1
        elif outcome.status == OUTCOME_CLAIM_LOST:
            summary.claim_lost += 1
        else:
            summary.failed += 1
            summary.failures.append(
                {
                    "queue_record_id": outcome.queue_record_id,
                    "device_id": outcome.device_id,
                    "code": outcome.error_code,
                    "message": outcome.error_message,
                }
            )

    logger.info(
        "queue_drained",
        extra={"count": summary.claimed, "reason": f"completed={summary.completed} failed={summary.failed}"},
    )
    return summary
