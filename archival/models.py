import uuid

from django.db import models

from core.models import User


class ArchiveEntry(models.Model):
    """Full JSON snapshot of one row removed by the archival engine.

    Entries written by the same archive call share a `batch_id`; restore
    consumes the most recent unconsumed batch for a device.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    original_table = models.CharField(max_length=64)
    original_id = models.CharField(max_length=64)
    device_id = models.CharField(max_length=64, db_index=True)
    archived_payload = models.JSONField()
    reason = models.CharField(max_length=255)
    batch_id = models.UUIDField()
    archived_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="archived_entries"
    )
    archived_at = models.DateTimeField(auto_now_add=True)
    restored_at = models.DateTimeField(null=True, blank=True)
    restored_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="restored_entries"
    )

    class Meta:
        indexes = [
            models.Index(fields=["device_id", "archived_at"], name="archive_device_archived_idx"),
            models.Index(fields=["original_table", "archived_at"], name="archive_table_archived_idx"),
            models.Index(fields=["batch_id"], name="archive_batch_idx"),
        ]

    @property
    def is_active(self):
        return self.restored_at is None
