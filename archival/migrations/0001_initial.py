import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ArchiveEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("original_table", models.CharField(max_length=64)),
                ("original_id", models.CharField(max_length=64)),
                ("device_id", models.CharField(db_index=True, max_length=64)),
                ("archived_payload", models.JSONField()),
                ("reason", models.CharField(max_length=255)),
                ("batch_id", models.UUIDField()),
                ("archived_at", models.DateTimeField(auto_now_add=True)),
                ("restored_at", models.DateTimeField(blank=True, null=True)),
                (
                    "archived_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="archived_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "restored_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="restored_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["device_id", "archived_at"], name="archive_device_archived_idx"),
                    models.Index(fields=["original_table", "archived_at"], name="archive_table_archived_idx"),
                    models.Index(fields=["batch_id"], name="archive_batch_idx"),
                ],
            },
        ),
    ]
