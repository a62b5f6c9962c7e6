from django.urls import path
from rest_framework.routers import SimpleRouter

from archival.views import (
    ArchiveDeviceView,
    ArchiveEntryViewSet,
    ArchiveStatsView,
    BulkArchiveView,
    NuclearDeleteView,
    PurgeArchiveView,
    RestoreDeviceView,
)

router = SimpleRouter()
router.register(r"entries", ArchiveEntryViewSet, basename="archive-entry")

urlpatterns = router.urls + [
    path("devices/<str:device_id>/archive", ArchiveDeviceView.as_view(), name="archive-device"),
    path("devices/<str:device_id>/restore", RestoreDeviceView.as_view(), name="restore-device"),
    path("devices/<str:device_id>/purge", PurgeArchiveView.as_view(), name="purge-archive"),
    path("bulk", BulkArchiveView.as_view(), name="archive-bulk"),
    path("nuclear", NuclearDeleteView.as_view(), name="archive-nuclear"),
    path("stats", ArchiveStatsView.as_view(), name="archive-stats"),
]
