from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.errors import ConflictError
from common.permissions import RoleCapabilityPermission
from intake import queue
from intake.models import QueueProcessingLog, QueueRecord
from intake.pipeline import drain_queue
from intake.serializers import (
    DrainSerializer,
    EnqueueSerializer,
    QueueProcessingLogSerializer,
    QueueRecordSerializer,
    RetryFailedSerializer,
)


class IntakeRecordsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "intake.enqueue"}

    def post(self, request):
        serializer = EnqueueSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = queue.enqueue(data["records"], source=data["source"])
        body = result.as_dict()
        if data["process"] and result.accepted:
            body["drain"] = drain_queue(limit=result.accepted).as_dict()

        create_audit_log_from_request(
            request,
            action="intake.enqueue",
            entity="queue_batch",
            entity_id=result.batch_id,
            after_snapshot={"accepted": result.accepted, "rejected": len(result.rejected), "source": data["source"]},
        )
        return Response(body, status=status.HTTP_202_ACCEPTED)


class QueueStatsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "intake.view"}

    def get(self, request):
        return Response(queue.stats())


class DrainView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "intake.drain"}

    def post(self, request):
        serializer = DrainSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = drain_queue(limit=serializer.validated_data.get("limit"))
        create_audit_log_from_request(
            request,
            action="intake.drain",
            entity="queue",
            after_snapshot={"claimed": summary.claimed, "completed": summary.completed, "failed": summary.failed},
        )
        return Response(summary.as_dict())


class RetryFailedView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "intake.retry"}

    def post(self, request):
        serializer = RetryFailedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ids = serializer.validated_data.get("ids")
        count = queue.retry_failed(ids=ids)
        create_audit_log_from_request(
            request,
            action="intake.retry",
            entity="queue",
            after_snapshot={"retried": count, "ids": ids},
        )
        return Response({"retried": count})


class QueueRecordViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = QueueRecord.objects.all()
    serializer_class = QueueRecordSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "intake.view", "retrieve": "intake.view", "retry": "intake.retry"}

    def get_queryset(self):
        qs = super().get_queryset().order_by("-created_at")
        params = self.request.query_params
        for param in ("status", "device_id", "batch_id", "source", "error_code"):
            if params.get(param):
                qs = qs.filter(**{param: params[param]})
        return qs

    @action(detail=True, methods=["post"], url_path="retry")
    def retry(self, request, pk=None):
        record = self.get_object()
        if record.status != QueueRecord.Status.FAILED:
            raise ConflictError(
                f"Only failed records can be retried; this one is {record.status}.",
                {"status": record.status},
            )
        queue.retry_failed(ids=[record.id])
        create_audit_log_from_request(
            request,
            action="intake.retry",
            entity="queue_record",
            entity_id=record.id,
            before_snapshot={"status": record.status, "error_code": record.error_code},
        )
        record.refresh_from_db()
        return Response(self.get_serializer(record).data)


class QueueProcessingLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = QueueProcessingLog.objects.all()
    serializer_class = QueueProcessingLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "intake.view", "retrieve": "intake.view"}

    def get_queryset(self):
        qs = super().get_queryset().order_by("-id")
        params = self.request.query_params
        for param in ("queue_record_id", "device_id", "action", "error_code"):
            if params.get(param):
                qs = qs.filter(**{param: params[param]})
        return qs
