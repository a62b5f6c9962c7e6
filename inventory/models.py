import uuid

from django.db import models
from django.utils import timezone


class Working(models.TextChoices):
    YES = "yes", "Yes"
    NO = "no", "No"
    PENDING = "pending", "Pending"


class Location(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Product(models.Model):
    """Root of the per-device hierarchy, one row per IMEI-like identifier.

    Timestamps use explicit defaults rather than auto_now so an archived row
    can be re-inserted with its original values on restore.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    device_id = models.CharField(max_length=64, unique=True)
    sku = models.CharField(max_length=255)
    generated_sku = models.CharField(max_length=255, blank=True, default="")
    brand = models.CharField(max_length=128, default="Unknown")
    display_name = models.CharField(max_length=255, blank=True, default="")
    needs_review = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["sku"], name="product_sku_idx"),
            models.Index(fields=["needs_review", "updated_at"], name="product_review_idx"),
        ]

    def __str__(self):
        return f"{self.device_id} ({self.sku})"


class DeviceAttributes(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.OneToOneField(
        Product,
        to_field="device_id",
        db_column="device_id",
        on_delete=models.PROTECT,
        related_name="attributes",
    )
    model = models.CharField(max_length=255, default="Unknown")
    model_number = models.CharField(max_length=128, blank=True, default="")
    storage = models.CharField(max_length=64, default="Unknown")
    color = models.CharField(max_length=64, default="Unknown")
    carrier = models.CharField(max_length=64, default="Unknown")
    battery_health = models.PositiveSmallIntegerField(null=True, blank=True)
    battery_cycle_count = models.PositiveIntegerField(null=True, blank=True)
    working = models.CharField(max_length=16, choices=Working.choices, default=Working.PENDING)
    location = models.ForeignKey(Location, on_delete=models.PROTECT, null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)


class InspectionResult(models.Model):
    class Outcome(models.TextChoices):
        PASS = "pass", "Pass"
        FAIL = "fail", "Fail"
        PENDING = "pending", "Pending"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.OneToOneField(
        Product,
        to_field="device_id",
        db_column="device_id",
        on_delete=models.PROTECT,
        related_name="inspection",
    )
    outcome = models.CharField(max_length=16, choices=Outcome.choices, default=Outcome.PENDING)
    defect_text = models.TextField(blank=True, default="")
    test_notes = models.TextField(blank=True, default="")
    tested_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)


class InventoryCount(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=255)
    location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name="inventory_counts")
    total = models.PositiveIntegerField(default=0)
    passed = models.PositiveIntegerField(default=0)
    failed = models.PositiveIntegerField(default=0)
    reserved = models.PositiveIntegerField(default=0)
    available = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["sku", "location"], name="uniq_inventory_sku_location"),
        ]

    def recompute_available(self):
        self.available = max(self.total - self.reserved - self.failed, 0)
        return self.available


class MovementRecord(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(
        Product,
        to_field="device_id",
        db_column="device_id",
        on_delete=models.PROTECT,
        related_name="movements",
    )
    from_location = models.ForeignKey(
        Location, on_delete=models.PROTECT, null=True, blank=True, related_name="movements_out"
    )
    to_location = models.ForeignKey(Location, on_delete=models.PROTECT, related_name="movements_in")
    status = models.CharField(max_length=32, default="received")
    reason = models.CharField(max_length=255, blank=True, default="")
    queue_record_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["product", "created_at"], name="movement_device_created_idx"),
        ]


class SkuMatchResult(models.Model):
    class Status(models.TextChoices):
        MATCHED = "matched", "Matched"
        MANUAL_REVIEW = "manual_review", "Manual review"
        NO_MATCH = "no_match", "No match"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    device_id = models.CharField(max_length=64, unique=True)
    generated_sku = models.CharField(max_length=255)
    matched_sku = models.CharField(max_length=255, blank=True, default="")
    confidence = models.FloatField(default=0)
    method = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(max_length=32, choices=Status.choices)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "updated_at"], name="skumatch_status_idx"),
        ]
