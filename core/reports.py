from datetime import timedelta

from django.core.cache import cache
from django.db.models import Count, Sum
from django.utils import timezone

from archival.services import archive_stats
from intake import queue
from intake.models import QueueProcessingLog, QueueRecord
from inventory.models import InventoryCount, Product, SkuMatchResult

REPORT_CACHE_TTL_SECONDS = 30
HEALTH_REPORT_CACHE_KEY = "health-report"


def _inventory_summary():
    totals = InventoryCount.objects.aggregate(
        total=Sum("total"),
        passed=Sum("passed"),
        failed=Sum("failed"),
        available=Sum("available"),
    )
    return {
        "products": Product.objects.count(),
        "needs_review": Product.objects.filter(needs_review=True).count(),
        "sku_locations": InventoryCount.objects.count(),
        "units": {key: value or 0 for key, value in totals.items()},
    }


def _recent_failures(since):
    rows = (
        QueueProcessingLog.objects.filter(action=QueueProcessingLog.Action.FAILED, created_at__gte=since)
        .order_by()
        .values("error_code")
        .annotate(total=Count("id"))
    )
    return {row["error_code"] or "unknown": row["total"] for row in rows}


def build_health_report(*, use_cache=True):
    """Queue, inventory and archive counters for the operator dashboard."""
    if use_cache:
        cached = cache.get(HEALTH_REPORT_CACHE_KEY)
        if cached is not None:
            return cached

    now = timezone.now()
    oldest_pending = (
        QueueRecord.objects.filter(status=QueueRecord.Status.PENDING).order_by("created_at").values_list(
            "created_at", flat=True
        ).first()
    )
    match_rows = SkuMatchResult.objects.order_by().values("status").annotate(total=Count("id"))

    report = {
        "generated_at": now.isoformat(),
        "queue": queue.stats(),
        "oldest_pending_seconds": round((now - oldest_pending).total_seconds(), 1) if oldest_pending else None,
        "failures_last_24h": _recent_failures(now - timedelta(hours=24)),
        "inventory": _inventory_summary(),
        "sku_matching": {row["status"]: row["total"] for row in match_rows},
        "archive": archive_stats(),
    }
    cache.set(HEALTH_REPORT_CACHE_KEY, report, REPORT_CACHE_TTL_SECONDS)
    return report
