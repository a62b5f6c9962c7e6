from rest_framework import serializers

from archival.models import ArchiveEntry


class ArchiveRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)


class BulkArchiveSerializer(serializers.Serializer):
    device_ids = serializers.ListField(
        child=serializers.CharField(max_length=64),
        allow_empty=False,
        max_length=10000,
    )
    reason = serializers.CharField(max_length=255)


class NuclearDeleteSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)
    confirmation = serializers.CharField(allow_blank=True)


class ArchiveEntrySerializer(serializers.ModelSerializer):
    archived_by_username = serializers.CharField(source="archived_by.username", read_only=True, default=None)
    restored_by_username = serializers.CharField(source="restored_by.username", read_only=True, default=None)
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = ArchiveEntry
        fields = [
            "id",
            "original_table",
            "original_id",
            "device_id",
            "reason",
            "batch_id",
            "archived_by",
            "archived_by_username",
            "archived_at",
            "restored_at",
            "restored_by",
            "restored_by_username",
            "is_active",
            "archived_payload",
        ]
        read_only_fields = fields
