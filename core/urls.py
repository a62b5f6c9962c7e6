from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import AuditLogViewSet, HealthStatsView, healthz, readyz

router = DefaultRouter()
router.register(r"admin/audit-logs", AuditLogViewSet, basename="audit-log")

urlpatterns = router.urls + [
    path("health/stats", HealthStatsView.as_view(), name="health_stats"),
    path("healthz", healthz, name="healthz"),
    path("readyz", readyz, name="readyz"),
]
