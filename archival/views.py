from rest_framework import status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from archival import services
from archival.models import ArchiveEntry
from archival.serializers import (
    ArchiveEntrySerializer,
    ArchiveRequestSerializer,
    BulkArchiveSerializer,
    NuclearDeleteSerializer,
)
from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission


class ArchiveDeviceView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "archive.manage"}

    def post(self, request, device_id):
        serializer = ArchiveRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = services.archive(device_id, serializer.validated_data["reason"], actor=request.user)
        create_audit_log_from_request(
            request,
            action="device.archive",
            entity="product",
            entity_id=device_id,
            after_snapshot=summary.as_dict(),
        )
        return Response(summary.as_dict())


class RestoreDeviceView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "archive.manage"}

    def post(self, request, device_id):
        summary = services.restore(device_id, actor=request.user)
        create_audit_log_from_request(
            request,
            action="device.restore",
            entity="product",
            entity_id=device_id,
            after_snapshot=summary.as_dict(),
        )
        return Response(summary.as_dict())


class PurgeArchiveView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"delete": "archive.purge"}

    def delete(self, request, device_id):
        deleted = services.purge_archived(device_id)
        create_audit_log_from_request(
            request,
            action="archive.purge",
            entity="archive_entry",
            entity_id=device_id,
            before_snapshot={"entries": deleted},
        )
        return Response({"device_id": device_id, "purged": deleted})


class BulkArchiveView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "archive.manage"}

    def post(self, request):
        serializer = BulkArchiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = services.bulk_archive(
            serializer.validated_data["device_ids"],
            serializer.validated_data["reason"],
            actor=request.user,
        )
        create_audit_log_from_request(
            request,
            action="device.bulk_archive",
            entity="product",
            after_snapshot={"archived": summary.archived, "failed": summary.failed},
        )
        return Response(summary.as_dict())


class NuclearDeleteView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "archive.nuclear"}

    def post(self, request):
        serializer = NuclearDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = services.nuclear_delete(
            serializer.validated_data["reason"],
            confirmation=serializer.validated_data["confirmation"],
            actor=request.user,
        )
        create_audit_log_from_request(
            request,
            action="device.nuclear_delete",
            entity="product",
            after_snapshot={"archived": len(summary.archived), "failed": summary.failed},
        )
        return Response(summary.as_dict(), status=status.HTTP_200_OK)


class ArchiveEntryViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ArchiveEntry.objects.select_related("archived_by", "restored_by")
    serializer_class = ArchiveEntrySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "archive.view", "retrieve": "archive.view"}

    def get_queryset(self):
        qs = super().get_queryset().order_by("-archived_at")
        params = self.request.query_params
        if params.get("device_id"):
            qs = qs.filter(device_id=params["device_id"])
        if params.get("table"):
            qs = qs.filter(original_table=params["table"])
        if params.get("reason"):
            qs = qs.filter(reason__icontains=params["reason"])
        if params.get("batch_id"):
            qs = qs.filter(batch_id=params["batch_id"])
        active = params.get("active")
        if active in {"1", "true"}:
            qs = qs.filter(restored_at__isnull=True)
        elif active in {"0", "false"}:
            qs = qs.filter(restored_at__isnull=False)
        return qs


class ArchiveStatsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "archive.view"}

    def get(self, request):
        return Response(services.archive_stats())
