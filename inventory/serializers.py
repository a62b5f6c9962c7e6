from rest_framework import serializers

from inventory.models import (
    DeviceAttributes,
    InspectionResult,
    InventoryCount,
    Location,
    MovementRecord,
    Product,
    SkuMatchResult,
)
from inventory.sku import is_partial_sku


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ["id", "name", "is_active", "created_at"]
        read_only_fields = fields


class DeviceAttributesSerializer(serializers.ModelSerializer):
    location_name = serializers.CharField(source="location.name", read_only=True, default=None)

    class Meta:
        model = DeviceAttributes
        fields = [
            "model",
            "model_number",
            "storage",
            "color",
            "carrier",
            "battery_health",
            "battery_cycle_count",
            "working",
            "location",
            "location_name",
            "notes",
            "updated_at",
        ]
        read_only_fields = fields


class InspectionResultSerializer(serializers.ModelSerializer):
    class Meta:
        model = InspectionResult
        fields = ["outcome", "defect_text", "test_notes", "tested_at"]
        read_only_fields = fields


class MovementRecordSerializer(serializers.ModelSerializer):
    from_location_name = serializers.CharField(source="from_location.name", read_only=True, default=None)
    to_location_name = serializers.CharField(source="to_location.name", read_only=True)

    class Meta:
        model = MovementRecord
        fields = [
            "id",
            "from_location",
            "from_location_name",
            "to_location",
            "to_location_name",
            "status",
            "reason",
            "queue_record_id",
            "created_at",
        ]
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    is_partial_sku = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "device_id",
            "sku",
            "generated_sku",
            "is_partial_sku",
            "brand",
            "display_name",
            "needs_review",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_is_partial_sku(self, obj):
        return is_partial_sku(obj.sku)


class ProductDetailSerializer(ProductSerializer):
    attributes = DeviceAttributesSerializer(read_only=True, allow_null=True)
    inspection = InspectionResultSerializer(read_only=True, allow_null=True)
    movements = MovementRecordSerializer(many=True, read_only=True)

    class Meta(ProductSerializer.Meta):
        fields = ProductSerializer.Meta.fields + ["attributes", "inspection", "movements"]
        read_only_fields = fields


class InventoryCountSerializer(serializers.ModelSerializer):
    location_name = serializers.CharField(source="location.name", read_only=True)

    class Meta:
        model = InventoryCount
        fields = ["id", "sku", "location", "location_name", "total", "passed", "failed", "reserved", "available", "updated_at"]
        read_only_fields = fields


class SkuMatchResultSerializer(serializers.ModelSerializer):
    class Meta:
        model = SkuMatchResult
        fields = [
            "id",
            "device_id",
            "generated_sku",
            "matched_sku",
            "confidence",
            "method",
            "status",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
