import json
import logging
import tempfile
import threading
import time
from datetime import timedelta
from io import StringIO
from pathlib import Path

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.errors import OperationTimeoutError
from common.logging import JsonFormatter
from common.utils import call_with_timeout
from core.models import AuditLog, User
from intake.models import QueueProcessingLog, QueueRecord
from intake.queue import enqueue
from inventory.models import Product


class RolePermissionCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.operator = self.user_model.objects.create_user(username="operator-core", password="pass1234")
        self.admin = self.user_model.objects.create_user(
            username="admin-core",
            password="pass1234",
            role=User.Role.ADMIN,
        )

    def test_new_users_default_to_operator(self):
        self.assertEqual(self.operator.role, User.Role.OPERATOR)

    def test_operator_cannot_read_archive_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.operator)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/archive/entries/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_superuser_passes_every_capability(self):
        root = self.user_model.objects.create_superuser(username="root", password="pass1234", email="root@example.com")
        self.client.force_authenticate(user=root)

        response = self.client.get("/api/v1/archive/stats")

        self.assertEqual(response.status_code, 200)


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        get_user_model().objects.create_user(
            username="floor-lead",
            email="Lead@Example.com",
            password="pass1234",
            role=User.Role.SUPERVISOR,
        )

    def test_login_with_email_is_case_insensitive(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "lead@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())
        self.assertIn("refresh", response.json())

    def test_bad_password_uses_error_envelope(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "floor-lead", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["status"], 401)


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="audit-admin",
            password="pass1234",
            role=User.Role.ADMIN,
        )
        self.supervisor = self.user_model.objects.create_user(
            username="audit-sup",
            password="pass1234",
            role=User.Role.SUPERVISOR,
        )

    def test_enqueue_writes_audit_log_with_request_id(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.post(
            "/api/v1/intake/records",
            {"records": [{"imei": "355000000000700", "model": "iPhone 13"}]},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(res.status_code, 202)
        self.assertEqual(res["X-Request-ID"], "req-123")
        self.assertTrue(AuditLog.objects.filter(request_id="req-123", actor=self.admin).exists())

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_logs_are_admin_only(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)

    def test_audit_log_filters_and_export(self):
        AuditLog.objects.create(action="device.archive", entity="product", entity_id="D1", actor=self.admin)
        AuditLog.objects.create(action="device.restore", entity="product", entity_id="D1", actor=self.admin)
        self.client.force_authenticate(user=self.admin)

        listing = self.client.get("/api/v1/admin/audit-logs/", {"action": "device.archive"})
        export = self.client.get("/api/v1/admin/audit-logs/export/", {"entity_id": "D1"})

        self.assertEqual(listing.json()["count"], 1)
        self.assertEqual(export["Content-Type"], "text/csv")
        rows = export.content.decode().strip().splitlines()
        self.assertEqual(len(rows), 3)
        self.assertTrue(rows[0].startswith("id,created_at,actor"))


class HealthTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username="viewer", password="pass1234")

    def test_healthz_and_readyz_are_public(self):
        health = self.client.get("/api/v1/healthz", HTTP_X_REQUEST_ID="lb-check-1")
        ready = self.client.get("/api/v1/readyz")

        self.assertEqual(health.json(), {"status": "ok", "request_id": "lb-check-1"})
        self.assertEqual(ready.status_code, 200)
        self.assertEqual(ready.json()["status"], "ready")

    def test_health_stats_reports_queue_and_inventory(self):
        enqueue([{"imei": "355000000000800", "model": "Pixel 7"}, {"imei": "355000000000801"}])
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/health/stats", {"fresh": "1"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["queue"]["pending"], 2)
        self.assertIsNotNone(body["oldest_pending_seconds"])
        self.assertEqual(body["inventory"]["products"], 0)
        self.assertEqual(body["archive"]["total"], 0)

    def test_health_stats_is_cached_until_fresh_requested(self):
        self.client.force_authenticate(user=self.user)
        first = self.client.get("/api/v1/health/stats").json()
        enqueue([{"imei": "355000000000802"}])

        cached = self.client.get("/api/v1/health/stats").json()
        fresh = self.client.get("/api/v1/health/stats", {"fresh": "true"}).json()

        self.assertEqual(cached["queue"], first["queue"])
        self.assertEqual(fresh["queue"]["pending"], first["queue"]["pending"] + 1)


class JsonFormatterTests(SimpleTestCase):
    def test_structured_fields_are_serialized(self):
        record = logging.LogRecord("intake.queue", logging.INFO, __file__, 1, "queue_records_enqueued", None, None)
        record.batch_id = "b-1"
        record.count = 3
        record.unrelated = "dropped"

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "queue_records_enqueued")
        self.assertEqual(payload["logger"], "intake.queue")
        self.assertEqual(payload["batch_id"], "b-1")
        self.assertEqual(payload["count"], 3)
        self.assertNotIn("unrelated", payload)


class CallWithTimeoutTests(SimpleTestCase):
    def test_timed_out_call_is_abandoned_not_cancelled(self):
        finished = threading.Event()

        def slow_lookup():
            time.sleep(0.3)
            finished.set()

        with self.assertLogs("common.utils", level="WARNING"):
            with self.assertRaises(OperationTimeoutError) as ctx:
                call_with_timeout(slow_lookup, 0.05, label="sku_matcher")

        self.assertEqual(ctx.exception.details["label"], "sku_matcher")
        self.assertFalse(finished.is_set())
        self.assertTrue(finished.wait(timeout=5))


class ManagementCommandTests(TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def write_file(self, name, content):
        path = Path(self.tmpdir.name) / name
        path.write_text(content, encoding="utf-8")
        return str(path)

    def test_import_csv_and_process(self):
        path = self.write_file(
            "devices.csv",
            "IMEI , Model,Storage,Color,Carrier,Location\n"
            "355000000000900,iPhone 14,128GB,Black,Unlocked,Shelf C\n"
            ",iPhone 14,128GB,Black,Unlocked,Shelf C\n",
        )
        out = StringIO()

        call_command("import_records", path, "--process", stdout=out)

        self.assertIn("accepted 1, rejected 1", out.getvalue())
        self.assertIn("completed 1", out.getvalue())
        self.assertEqual(QueueRecord.objects.get().source, QueueRecord.Source.FILE)
        self.assertTrue(Product.objects.filter(device_id="355000000000900").exists())

    def test_import_json_object_with_records_key(self):
        path = self.write_file(
            "devices.json",
            json.dumps({"records": [{"imei": "355000000000901"}, {"imei": "355000000000902"}]}),
        )
        out = StringIO()

        call_command("import_records", path, "--source", "bulk", stdout=out)

        self.assertEqual(QueueRecord.objects.filter(status=QueueRecord.Status.PENDING).count(), 2)
        self.assertEqual(set(QueueRecord.objects.values_list("source", flat=True)), {QueueRecord.Source.BULK})

    def test_import_rejects_missing_file_and_unknown_format(self):
        with self.assertRaises(CommandError):
            call_command("import_records", str(Path(self.tmpdir.name) / "missing.csv"))

        path = self.write_file("devices.txt", "imei\n1\n")
        with self.assertRaises(CommandError):
            call_command("import_records", path)

    def test_drain_queue_until_empty(self):
        enqueue([{"imei": f"35500000000100{i}", "model": "Pixel 8"} for i in range(5)])
        out = StringIO()

        call_command("drain_queue", "--limit", "2", "--until-empty", stdout=out)

        self.assertIn("Claimed 5, completed 5, failed 0", out.getvalue())
        self.assertEqual(Product.objects.count(), 5)

    def test_prune_queue_deletes_old_terminal_records(self):
        enqueue([{"imei": "355000000001100"}, {"imei": "355000000001101"}])
        QueueRecord.objects.update(
            status=QueueRecord.Status.COMPLETED,
            updated_at=timezone.now() - timedelta(days=45),
        )
        out = StringIO()

        call_command("prune_queue", "--days", "30", stdout=out)

        self.assertFalse(QueueRecord.objects.exists())
        self.assertEqual(QueueProcessingLog.objects.filter(action=QueueProcessingLog.Action.PRUNED).count(), 2)
        with self.assertRaises(CommandError):
            call_command("prune_queue", "--days", "0")

    def test_retry_failed_requires_a_selector(self):
        with self.assertRaises(CommandError):
            call_command("retry_failed")

    def test_retry_failed_by_code(self):
        enqueue([{"imei": "355000000001200"}, {"imei": "355000000001201"}])
        first, second = QueueRecord.objects.order_by("device_id")
        QueueRecord.objects.filter(id=first.id).update(status=QueueRecord.Status.FAILED, error_code="timeout")
        QueueRecord.objects.filter(id=second.id).update(status=QueueRecord.Status.FAILED, error_code="processing_error")
        out = StringIO()

        call_command("retry_failed", "--code", "timeout", stdout=out)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.status, QueueRecord.Status.PENDING)
        self.assertEqual(second.status, QueueRecord.Status.FAILED)
        self.assertIn("Reset 1", out.getvalue())
