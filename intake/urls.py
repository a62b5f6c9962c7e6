from django.urls import path
from rest_framework.routers import SimpleRouter

from intake.views import (
    DrainView,
    IntakeRecordsView,
    QueueProcessingLogViewSet,
    QueueRecordViewSet,
    QueueStatsView,
    RetryFailedView,
)

router = SimpleRouter()
router.register(r"queue", QueueRecordViewSet, basename="queue-record")
router.register(r"logs", QueueProcessingLogViewSet, basename="queue-log")

urlpatterns = router.urls + [
    path("records", IntakeRecordsView.as_view(), name="intake-records"),
    path("stats", QueueStatsView.as_view(), name="intake-stats"),
    path("drain", DrainView.as_view(), name="intake-drain"),
    path("retry-failed", RetryFailedView.as_view(), name="intake-retry-failed"),
]
