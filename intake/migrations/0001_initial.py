import uuid

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="QueueRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("raw_payload", models.JSONField()),
                ("device_id", models.CharField(db_index=True, max_length=64)),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("api", "API"),
                            ("bulk", "Bulk upload"),
                            ("inspection", "Inspection provider"),
                            ("file", "File import"),
                        ],
                        default="api",
                        max_length=16,
                    ),
                ),
                ("batch_id", models.UUIDField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("error_code", models.CharField(blank=True, default="", max_length=64)),
                ("error_message", models.TextField(blank=True, default="")),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("claim_token", models.UUIDField(blank=True, null=True)),
                ("claimed_at", models.DateTimeField(blank=True, null=True)),
                ("next_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="queue_status_created_idx"),
                    models.Index(fields=["claim_token"], name="queue_claim_token_idx"),
                    models.Index(fields=["batch_id"], name="queue_batch_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueueProcessingLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("queue_record_id", models.UUIDField(db_index=True)),
                ("device_id", models.CharField(blank=True, default="", max_length=64)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("claimed", "Claimed"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("retried", "Retried"),
                            ("released", "Released"),
                            ("pruned", "Pruned"),
                        ],
                        max_length=16,
                    ),
                ),
                ("message", models.TextField(blank=True, default="")),
                ("error_code", models.CharField(blank=True, default="", max_length=64)),
                ("duration_ms", models.FloatField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["action", "created_at"], name="queuelog_action_created_idx"),
                ],
            },
        ),
    ]
