import threading
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.test import APIClient

from archival import services
from archival.models import ArchiveEntry
from common.errors import ConflictError, NotFoundError, RecordValidationError
from core.models import AuditLog, User
from intake import queue
from intake.pipeline import drain_queue
from inventory.models import DeviceAttributes, InspectionResult, InventoryCount, MovementRecord, Product


def ingest(*device_ids):
    queue.enqueue(
        [
            {
                "imei": device_id,
                "brand": "Samsung",
                "model": "Galaxy S23",
                "storage": "128GB",
                "color": "Phantom Black",
                "carrier": "Verizon",
                "location": "Shelf B",
                "working": "pass",
                "notes": f"unit {device_id}",
            }
            for device_id in device_ids
        ]
    )
    drain_queue(limit=len(device_ids))


def table_rows(model):
    return sorted(model.objects.values(), key=lambda row: str(row["id"]))


class ArchiveTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="sup", password="pass1234", role=User.Role.SUPERVISOR)
        ingest("355000000000500")

    def test_archive_snapshots_all_four_tables(self):
        summary = services.archive("355000000000500", "customer return", actor=self.user)

        self.assertEqual(summary.archived, ["355000000000500"])
        self.assertEqual(summary.entries, 4)
        self.assertEqual(
            summary.tables,
            {"movement_record": 1, "inspection_result": 1, "device_attributes": 1, "product": 1},
        )
        entries = ArchiveEntry.objects.filter(device_id="355000000000500")
        self.assertEqual(
            set(entries.values_list("original_table", flat=True)),
            {"movement_record", "inspection_result", "device_attributes", "product"},
        )
        self.assertEqual(len(set(entries.values_list("batch_id", flat=True))), 1)
        self.assertTrue(all(entry.archived_by_id == self.user.id for entry in entries))
        self.assertFalse(Product.objects.exists())
        self.assertFalse(DeviceAttributes.objects.exists())
        self.assertFalse(InspectionResult.objects.exists())
        self.assertFalse(MovementRecord.objects.exists())

    def test_archive_leaves_inventory_counts_alone(self):
        before = list(InventoryCount.objects.values("sku", "total", "available"))

        services.archive("355000000000500", "sold")

        self.assertEqual(list(InventoryCount.objects.values("sku", "total", "available")), before)

    def test_archive_unknown_device_changes_nothing(self):
        with self.assertRaises(NotFoundError):
            services.archive("does-not-exist", "typo")

        self.assertFalse(ArchiveEntry.objects.exists())
        self.assertEqual(Product.objects.count(), 1)

    def test_archive_requires_reason(self):
        with self.assertRaises(RecordValidationError):
            services.archive("355000000000500", "   ")

    def test_failed_delete_rolls_back_snapshots(self):
        with patch("archival.services.snapshot_instance", side_effect=DatabaseError("lock timeout")):
            with self.assertRaises(Exception):
                services.archive("355000000000500", "sold")

        self.assertFalse(ArchiveEntry.objects.exists())
        self.assertTrue(Product.objects.filter(device_id="355000000000500").exists())
        self.assertEqual(MovementRecord.objects.count(), 1)


class RestoreTests(TestCase):
    def setUp(self):
        ingest("355000000000600")

    def test_restore_round_trip_is_identical(self):
        snapshots = {
            model: table_rows(model) for model in (Product, DeviceAttributes, InspectionResult, MovementRecord)
        }
        services.archive("355000000000600", "audit")

        summary = services.restore("355000000000600")

        self.assertEqual(
            summary.restored,
            {"product": 1, "device_attributes": 1, "inspection_result": 1, "movement_record": 1},
        )
        for model, rows in snapshots.items():
            with self.subTest(model=model.__name__):
                self.assertEqual(table_rows(model), rows)
        self.assertFalse(ArchiveEntry.objects.filter(restored_at__isnull=True).exists())

    def test_second_restore_is_not_found(self):
        services.archive("355000000000600", "audit")
        services.restore("355000000000600")

        with self.assertRaises(NotFoundError):
            services.restore("355000000000600")

    def test_restore_without_archive_is_not_found(self):
        with self.assertRaises(NotFoundError):
            services.restore("355000000000999")

    def test_restore_over_live_product_is_conflict(self):
        services.archive("355000000000600", "audit")
        ingest("355000000000600")

        with self.assertRaises(ConflictError):
            services.restore("355000000000600")

        self.assertEqual(ArchiveEntry.objects.filter(restored_at__isnull=True).count(), 4)

    def test_restore_uses_latest_batch(self):
        services.archive("355000000000600", "first")
        services.restore("355000000000600")
        ingest("355000000000600")
        services.archive("355000000000600", "second")

        summary = services.restore("355000000000600")

        second_batch = ArchiveEntry.objects.filter(reason="second").values_list("batch_id", flat=True).first()
        self.assertEqual(summary.batch_id, str(second_batch))
        self.assertEqual(MovementRecord.objects.filter(product_id="355000000000600").count(), 2)


class BulkArchiveTests(TestCase):
    def setUp(self):
        ingest("A1", "A2", "A3")

    def test_partial_failure_keeps_successful_archives(self):
        summary = services.bulk_archive(["A1", "missing", "A3", "A1"], "cleanup")

        self.assertEqual(summary.archived, ["A1", "A3"])
        self.assertEqual([(row["device_id"], row["code"]) for row in summary.failed], [("missing", "not_found")])
        self.assertFalse(Product.objects.filter(device_id__in=["A1", "A3"]).exists())
        self.assertTrue(Product.objects.filter(device_id="A2").exists())
        self.assertEqual(ArchiveEntry.objects.count(), 8)

    def test_cancellation_reports_skipped_ids(self):
        cancel = threading.Event()
        original = services._archive_device

        def archive_then_cancel(device_id, reason, actor):
            result = original(device_id, reason, actor)
            cancel.set()
            return result

        with patch("archival.services._archive_device", side_effect=archive_then_cancel):
            summary = services.bulk_archive(["A1", "A2", "A3"], "cleanup", batch_size=2, cancel_event=cancel)

        self.assertTrue(summary.cancelled)
        self.assertEqual(summary.archived, ["A1"])
        self.assertEqual(summary.skipped, ["A2", "A3"])
        self.assertEqual(Product.objects.count(), 2)

    def test_nuclear_delete_requires_confirmation(self):
        with self.assertRaises(RecordValidationError):
            services.nuclear_delete("wipe", confirmation="yes please")
        self.assertEqual(Product.objects.count(), 3)

        summary = services.nuclear_delete("wipe", confirmation=services.NUCLEAR_DELETE_CONFIRMATION)

        self.assertEqual(sorted(summary.archived), ["A1", "A2", "A3"])
        self.assertFalse(Product.objects.exists())

    def test_purge_and_stats(self):
        services.bulk_archive(["A1", "A2"], "cleanup")
        services.restore("A2")

        stats = services.archive_stats()
        self.assertEqual(stats["total"], 8)
        self.assertEqual(stats["active"], 4)
        self.assertEqual(stats["restored"], 4)
        self.assertEqual(stats["devices"], 1)
        self.assertEqual(stats["by_table"]["product"], 1)
        self.assertEqual(stats["today"], 8)

        self.assertEqual(services.purge_archived("A1"), 4)
        with self.assertRaises(NotFoundError):
            services.purge_archived("A1")


class ArchiveApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.operator = user_model.objects.create_user(username="op", password="pass1234")
        self.supervisor = user_model.objects.create_user(username="sup", password="pass1234", role=User.Role.SUPERVISOR)
        self.admin = user_model.objects.create_user(username="adm", password="pass1234", role=User.Role.ADMIN)
        ingest("B1", "B2")

    def test_operator_cannot_archive(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.post("/api/v1/archive/devices/B1/archive", {"reason": "x"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(Product.objects.filter(device_id="B1").exists())

    def test_archive_and_restore_endpoints(self):
        self.client.force_authenticate(user=self.supervisor)

        archived = self.client.post("/api/v1/archive/devices/B1/archive", {"reason": "damaged"}, format="json")
        entries = self.client.get("/api/v1/archive/entries/", {"device_id": "B1", "active": "true"})
        restored = self.client.post("/api/v1/archive/devices/B1/restore", {}, format="json")
        again = self.client.post("/api/v1/archive/devices/B1/restore", {}, format="json")

        self.assertEqual(archived.status_code, 200)
        self.assertEqual(archived.json()["entries"], 4)
        self.assertEqual(entries.json()["count"], 4)
        self.assertEqual(restored.status_code, 200)
        self.assertEqual(again.status_code, 404)
        self.assertEqual(again.json()["code"], "not_found")
        self.assertEqual(
            set(AuditLog.objects.filter(entity_id="B1").values_list("action", flat=True)),
            {"device.archive", "device.restore"},
        )

    def test_archive_unknown_device_returns_not_found_envelope(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post("/api/v1/archive/devices/nope/archive", {"reason": "x"}, format="json")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["status"], 404)

    def test_bulk_endpoint_reports_failures(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            "/api/v1/archive/bulk",
            {"device_ids": ["B1", "ghost"], "reason": "cleanup"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["archived"], ["B1"])
        self.assertEqual(response.json()["failed"][0]["device_id"], "ghost")

    def test_nuclear_is_admin_only_and_checks_confirmation(self):
        self.client.force_authenticate(user=self.supervisor)
        forbidden = self.client.post("/api/v1/archive/nuclear", {"reason": "x", "confirmation": "archive-all-devices"}, format="json")
        self.assertEqual(forbidden.status_code, 403)

        self.client.force_authenticate(user=self.admin)
        wrong = self.client.post("/api/v1/archive/nuclear", {"reason": "x", "confirmation": "nope"}, format="json")
        right = self.client.post(
            "/api/v1/archive/nuclear",
            {"reason": "x", "confirmation": "archive-all-devices"},
            format="json",
        )

        self.assertEqual(wrong.status_code, 422)
        self.assertEqual(wrong.json()["code"], "validation_error")
        self.assertIn("confirmation", wrong.json()["errors"])
        self.assertEqual(right.status_code, 200)
        self.assertFalse(Product.objects.exists())

    def test_purge_is_admin_only(self):
        self.client.force_authenticate(user=self.supervisor)
        self.client.post("/api/v1/archive/devices/B2/archive", {"reason": "x"}, format="json")
        denied = self.client.delete("/api/v1/archive/devices/B2/purge")

        self.client.force_authenticate(user=self.admin)
        purged = self.client.delete("/api/v1/archive/devices/B2/purge")
        stats = self.client.get("/api/v1/archive/stats")

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(purged.json()["purged"], 4)
        self.assertEqual(stats.json()["total"], 0)
