import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Location",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255, unique=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("device_id", models.CharField(max_length=64, unique=True)),
                ("sku", models.CharField(max_length=255)),
                ("generated_sku", models.CharField(blank=True, default="", max_length=255)),
                ("brand", models.CharField(default="Unknown", max_length=128)),
                ("display_name", models.CharField(blank=True, default="", max_length=255)),
                ("needs_review", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["sku"], name="product_sku_idx"),
                    models.Index(fields=["needs_review", "updated_at"], name="product_review_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SkuMatchResult",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("device_id", models.CharField(max_length=64, unique=True)),
                ("generated_sku", models.CharField(max_length=255)),
                ("matched_sku", models.CharField(blank=True, default="", max_length=255)),
                ("confidence", models.FloatField(default=0)),
                ("method", models.CharField(blank=True, default="", max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[("matched", "Matched"), ("manual_review", "Manual review"), ("no_match", "No match")],
                        max_length=32,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "updated_at"], name="skumatch_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeviceAttributes",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("model", models.CharField(default="Unknown", max_length=255)),
                ("model_number", models.CharField(blank=True, default="", max_length=128)),
                ("storage", models.CharField(default="Unknown", max_length=64)),
                ("color", models.CharField(default="Unknown", max_length=64)),
                ("carrier", models.CharField(default="Unknown", max_length=64)),
                ("battery_health", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("battery_cycle_count", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "working",
                    models.CharField(
                        choices=[("yes", "Yes"), ("no", "No"), ("pending", "Pending")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "location",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        to="inventory.location",
                    ),
                ),
                (
                    "product",
                    models.OneToOneField(
                        db_column="device_id",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="attributes",
                        to="inventory.product",
                        to_field="device_id",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="InspectionResult",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "outcome",
                    models.CharField(
                        choices=[("pass", "Pass"), ("fail", "Fail"), ("pending", "Pending")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("defect_text", models.TextField(blank=True, default="")),
                ("test_notes", models.TextField(blank=True, default="")),
                ("tested_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "product",
                    models.OneToOneField(
                        db_column="device_id",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inspection",
                        to="inventory.product",
                        to_field="device_id",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="InventoryCount",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(max_length=255)),
                ("total", models.PositiveIntegerField(default=0)),
                ("passed", models.PositiveIntegerField(default=0)),
                ("failed", models.PositiveIntegerField(default=0)),
                ("reserved", models.PositiveIntegerField(default=0)),
                ("available", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "location",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inventory_counts",
                        to="inventory.location",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("sku", "location"), name="uniq_inventory_sku_location"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MovementRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(default="received", max_length=32)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("queue_record_id", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "from_location",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements_out",
                        to="inventory.location",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        db_column="device_id",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="inventory.product",
                        to_field="device_id",
                    ),
                ),
                (
                    "to_location",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements_in",
                        to="inventory.location",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["product", "created_at"], name="movement_device_created_idx"),
                ],
            },
        ),
    ]
