"""Per-entity upserts used by the intake pipeline.

Every function expects to run inside the caller's transaction and only
writes rows whose parent already exists: Location and Product first, then
the device children, then the SKU aggregate and the movement history.
"""

from django.db import transaction
from django.utils import timezone

from inventory.models import (
    DeviceAttributes,
    InspectionResult,
    InventoryCount,
    Location,
    MovementRecord,
    Product,
    SkuMatchResult,
    Working,
)

MOVEMENT_RECEIVED = "received"
MOVEMENT_RELOCATED = "relocated"
MOVEMENT_REPROCESSED = "reprocessed"

WORKING_TO_OUTCOME = {
    Working.YES: InspectionResult.Outcome.PASS,
    Working.NO: InspectionResult.Outcome.FAIL,
    Working.PENDING: InspectionResult.Outcome.PENDING,
}


def resolve_location(name):
    location, _ = Location.objects.get_or_create(name=name.strip())
    return location


def upsert_product(device_id, *, sku, generated_sku, brand, display_name, needs_review=False):
    """Insert or update the Product for `device_id`; returns (product, created)."""
    now = timezone.now()
    product = Product.objects.select_for_update().filter(device_id=device_id).first()
    if product is None:
        # Savepoint: a concurrent insert of the same device_id raises IntegrityError here.
        with transaction.atomic():
            product = Product.objects.create(
                device_id=device_id,
                sku=sku,
                generated_sku=generated_sku,
                brand=brand,
                display_name=display_name,
                needs_review=needs_review,
                created_at=now,
                updated_at=now,
            )
        return product, True

    product.sku = sku
    product.generated_sku = generated_sku
    product.brand = brand
    product.display_name = display_name
    product.needs_review = needs_review
    product.updated_at = now
    product.save(update_fields=["sku", "generated_sku", "brand", "display_name", "needs_review", "updated_at"])
    return product, False


def upsert_device_attributes(product, record, location):
    now = timezone.now()
    attributes, _ = DeviceAttributes.objects.update_or_create(
        product=product,
        defaults={
            "model": record.model,
            "model_number": record.model_number,
            "storage": record.storage,
            "color": record.color,
            "carrier": record.carrier,
            "battery_health": record.battery_health,
            "battery_cycle_count": record.battery_cycle_count,
            "working": record.working,
            "location": location,
            "notes": record.notes,
            "updated_at": now,
        },
    )
    return attributes


def upsert_inspection_result(product, record):
    now = timezone.now()
    inspection, _ = InspectionResult.objects.update_or_create(
        product=product,
        defaults={
            "outcome": WORKING_TO_OUTCOME.get(record.working, InspectionResult.Outcome.PENDING),
            "defect_text": record.defect_text,
            "test_notes": record.notes,
            "tested_at": now,
            "updated_at": now,
        },
    )
    return inspection


def upsert_inventory_count(sku, location, quantity, working):
    """Add `quantity` units of `sku` at `location` and refresh the derived availability."""
    count, _ = InventoryCount.objects.select_for_update().get_or_create(sku=sku, location=location)
    count.total += quantity
    if working == Working.YES:
        count.passed += quantity
    elif working == Working.NO:
        count.failed += quantity
    count.recompute_available()
    count.save(update_fields=["total", "passed", "failed", "available", "updated_at"])
    return count


def append_movement(product, to_location, *, queue_record_id=None, reason=""):
    previous = MovementRecord.objects.filter(product=product).order_by("-created_at").first()
    if previous is None:
        status, from_location = MOVEMENT_RECEIVED, None
    elif previous.to_location_id != to_location.id:
        status, from_location = MOVEMENT_RELOCATED, previous.to_location
    else:
        status, from_location = MOVEMENT_REPROCESSED, previous.to_location

    return MovementRecord.objects.create(
        product=product,
        from_location=from_location,
        to_location=to_location,
        status=status,
        reason=reason,
        queue_record_id=queue_record_id,
    )


def record_sku_match(device_id, generated_sku, decision):
    match = decision.match
    result, _ = SkuMatchResult.objects.update_or_create(
        device_id=device_id,
        defaults={
            "generated_sku": generated_sku,
            "matched_sku": match.matched_sku if match else "",
            "confidence": match.confidence if match else 0,
            "method": match.method if match else "",
            "status": decision.status,
            "notes": match.notes if match else "",
        },
    )
    return result
