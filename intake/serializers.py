from rest_framework import serializers

from intake.models import QueueProcessingLog, QueueRecord


class EnqueueSerializer(serializers.Serializer):
    records = serializers.ListField(child=serializers.JSONField(), allow_empty=False, max_length=10000)
    source = serializers.ChoiceField(choices=QueueRecord.Source.choices, default=QueueRecord.Source.API)
    process = serializers.BooleanField(required=False, default=False)


class DrainSerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=1000, required=False)


class RetryFailedSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), required=False, allow_empty=False)


class QueueRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = QueueRecord
        fields = [
            "id",
            "device_id",
            "source",
            "batch_id",
            "status",
            "error_code",
            "error_message",
            "attempts",
            "claimed_at",
            "next_attempt_at",
            "processed_at",
            "created_at",
            "updated_at",
            "raw_payload",
        ]
        read_only_fields = fields


class QueueProcessingLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = QueueProcessingLog
        fields = ["id", "queue_record_id", "device_id", "action", "message", "error_code", "duration_ms", "created_at"]
        read_only_fields = fields
