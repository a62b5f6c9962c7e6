import uuid

from django.db import models


class QueueRecord(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    class Source(models.TextChoices):
        API = "api", "API"
        BULK = "bulk", "Bulk upload"
        INSPECTION = "inspection", "Inspection provider"
        FILE = "file", "File import"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    raw_payload = models.JSONField()
    device_id = models.CharField(max_length=64, db_index=True)
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.API)
    batch_id = models.UUIDField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    error_code = models.CharField(max_length=64, blank=True, default="")
    error_message = models.TextField(blank=True, default="")
    attempts = models.PositiveIntegerField(default=0)
    claim_token = models.UUIDField(null=True, blank=True)
    claimed_at = models.DateTimeField(null=True, blank=True)
    next_attempt_at = models.DateTimeField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="queue_status_created_idx"),
            models.Index(fields=["claim_token"], name="queue_claim_token_idx"),
            models.Index(fields=["batch_id"], name="queue_batch_idx"),
        ]

    @property
    def is_terminal(self):
        return self.status in {self.Status.COMPLETED, self.Status.FAILED}


class QueueProcessingLog(models.Model):
    class Action(models.TextChoices):
        CLAIMED = "claimed", "Claimed"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        RETRIED = "retried", "Retried"
        RELEASED = "released", "Released"
        PRUNED = "pruned", "Pruned"

    id = models.BigAutoField(primary_key=True)
    queue_record_id = models.UUIDField(db_index=True)
    device_id = models.CharField(max_length=64, blank=True, default="")
    action = models.CharField(max_length=16, choices=Action.choices)
    message = models.TextField(blank=True, default="")
    error_code = models.CharField(max_length=64, blank=True, default="")
    duration_ms = models.FloatField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["action", "created_at"], name="queuelog_action_created_idx"),
        ]
