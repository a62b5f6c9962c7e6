from django.db.models import Q
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from common.permissions import RoleCapabilityPermission
from inventory.models import InventoryCount, Location, Product, SkuMatchResult
from inventory.serializers import (
    InventoryCountSerializer,
    LocationSerializer,
    ProductDetailSerializer,
    ProductSerializer,
    SkuMatchResultSerializer,
)
from inventory.sku import PARTIAL_PREFIX


class InventoryReadOnlyViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "inventory.view", "retrieve": "inventory.view"}


class ProductViewSet(InventoryReadOnlyViewSet):
    queryset = Product.objects.all()
    lookup_field = "device_id"

    def get_serializer_class(self):
        if self.action == "retrieve":
            return ProductDetailSerializer
        return ProductSerializer

    def get_queryset(self):
        qs = super().get_queryset().order_by("-updated_at")
        if self.action == "retrieve":
            return qs.select_related("attributes", "inspection").prefetch_related("movements")

        params = self.request.query_params
        search = params.get("q")
        if search:
            qs = qs.filter(Q(device_id__icontains=search) | Q(sku__icontains=search) | Q(display_name__icontains=search))
        if params.get("sku"):
            qs = qs.filter(sku=params["sku"])
        if params.get("brand"):
            qs = qs.filter(brand__iexact=params["brand"])
        if params.get("needs_review") in {"1", "true"}:
            qs = qs.filter(needs_review=True)
        if params.get("partial") in {"1", "true"}:
            qs = qs.filter(sku__startswith=PARTIAL_PREFIX)
        return qs


class LocationViewSet(InventoryReadOnlyViewSet):
    queryset = Location.objects.order_by("name")
    serializer_class = LocationSerializer


class InventoryCountViewSet(InventoryReadOnlyViewSet):
    queryset = InventoryCount.objects.select_related("location")
    serializer_class = InventoryCountSerializer

    def get_queryset(self):
        qs = super().get_queryset().order_by("sku", "location__name")
        if self.request.query_params.get("sku"):
            qs = qs.filter(sku=self.request.query_params["sku"])
        if self.request.query_params.get("location"):
            qs = qs.filter(location__name=self.request.query_params["location"])
        return qs


class SkuMatchResultViewSet(InventoryReadOnlyViewSet):
    queryset = SkuMatchResult.objects.all()
    serializer_class = SkuMatchResultSerializer

    def get_queryset(self):
        qs = super().get_queryset().order_by("-updated_at")
        if self.request.query_params.get("status"):
            qs = qs.filter(status=self.request.query_params["status"])
        return qs
