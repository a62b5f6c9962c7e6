import threading
import time
from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, OperationalError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from common.errors import RecordValidationError
from core.models import AuditLog, User
from intake import queue
from intake.models import QueueProcessingLog, QueueRecord
from intake.normalizer import coerce_tristate, normalize_record, parse_optional_int
from intake.pipeline import drain_queue, process_queue_record
from inventory.models import (
    DeviceAttributes,
    InspectionResult,
    InventoryCount,
    Location,
    MovementRecord,
    Product,
    SkuMatchResult,
    Working,
)


def confident_matcher(**kwargs):
    return {"matchedSku": "MASTER-SKU-1", "confidenceScore": 0.95, "method": "exact"}


def unsure_matcher(**kwargs):
    return {"matched_sku": "MASTER-SKU-2", "confidence": 0.65, "method": "fuzzy"}


def slow_matcher(**kwargs):
    time.sleep(0.5)
    return None


def device_record(device_id="355000000000100", **overrides):
    record = {
        "imei": device_id,
        "brand": "Apple",
        "model": "iPhone 14 Pro",
        "storage": "256GB",
        "color": "Space Black",
        "carrier": "Unlocked",
        "location": "Shelf A",
        "working": "yes",
        "battery_health": "91%",
    }
    record.update(overrides)
    return record


class NormalizerTests(SimpleTestCase):
    def test_inspection_provider_keys_are_aliases(self):
        record = normalize_record(
            {
                "deviceImei": "355000000000001",
                "Make": "Apple",
                "Model": "iPhone 13",
                "Model#": "A2482",
                "BatteryHealthPercentage": "87%",
                "BatteryCycle": "412",
                "Working": "YES",
                "Failed": "Face ID",
                "Notes": "light scratch",
            }
        )

        self.assertEqual(record.device_id, "355000000000001")
        self.assertEqual(record.brand, "Apple")
        self.assertEqual(record.model, "iPhone 13")
        self.assertEqual(record.model_number, "A2482")
        self.assertEqual(record.battery_health, 87)
        self.assertEqual(record.battery_cycle_count, 412)
        self.assertEqual(record.working, Working.YES)
        self.assertEqual(record.defect_text, "Face ID")
        self.assertEqual(record.notes, "light scratch")

    def test_device_id_alias_order(self):
        self.assertEqual(normalize_record({"imei": "111", "serialNumber": "222"}).device_id, "111")
        self.assertEqual(normalize_record({"IMEI": "", "device_imei": "333"}).device_id, "333")
        self.assertEqual(normalize_record({"serial_number": "SN-9"}).device_id, "SN-9")

    def test_spreadsheet_float_imei_is_restored(self):
        self.assertEqual(normalize_record({"IMEI": 355000000000001.0}).device_id, "355000000000001")

    def test_tristate_coercion(self):
        cases = [
            (True, Working.YES),
            (False, Working.NO),
            ("Pass", Working.YES),
            (" true ", Working.YES),
            ("FAIL", Working.NO),
            ("no", Working.NO),
            ("n/a", Working.PENDING),
            ("", Working.PENDING),
            (1, Working.PENDING),
            (None, Working.PENDING),
            (["yes"], Working.PENDING),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(coerce_tristate(value), expected)

    def test_battery_values_without_digits_are_absent(self):
        for value in ("not supported", "N/A", "BCC", "", None, True):
            with self.subTest(value=value):
                self.assertIsNone(parse_optional_int(value))
        self.assertEqual(parse_optional_int("95%"), 95)
        self.assertEqual(parse_optional_int(88), 88)

    def test_quantity_defaults_to_one(self):
        self.assertEqual(normalize_record({"imei": "1"}).quantity, 1)
        self.assertEqual(normalize_record({"imei": "1", "qty": "3"}).quantity, 3)
        self.assertEqual(normalize_record({"imei": "1", "quantity": 0}).quantity, 1)
        self.assertEqual(normalize_record({"imei": "1", "quantity": "many"}).quantity, 1)

    def test_brand_is_inferred_from_model(self):
        self.assertEqual(normalize_record({"imei": "1", "model": "Galaxy S22"}).brand, "Samsung")
        self.assertEqual(normalize_record({"imei": "1", "model": "iPad Air"}).brand, "Apple")
        self.assertEqual(normalize_record({"imei": "1", "model": "Pixel 8"}).brand, "Google")
        self.assertEqual(normalize_record({"imei": "1", "model": "Moto G"}).brand, "Unknown")

    def test_missing_fields_degrade_to_placeholders(self):
        record = normalize_record({"imei": "1", "model": "Pixel 8"})

        self.assertEqual(record.storage, "Unknown")
        self.assertEqual(record.color, "Unknown")
        self.assertEqual(record.carrier, "Unknown")
        self.assertEqual(record.display_name, "Google Pixel 8")

    @override_settings(INTAKE_DEFAULT_LOCATION="Dock 1")
    def test_location_falls_back_to_default(self):
        self.assertEqual(normalize_record({"imei": "1"}).location_name, "Dock 1")

    def test_missing_device_id_is_rejected(self):
        with self.assertRaises(RecordValidationError) as ctx:
            normalize_record({"model": "iPhone 12", "imei": "  "})
        self.assertEqual(ctx.exception.code, "validation_error")

        with self.assertRaises(RecordValidationError):
            normalize_record(["not", "a", "mapping"])

    def test_over_long_device_id_is_rejected(self):
        self.assertEqual(len(normalize_record({"serial": "S" * 64}).device_id), 64)

        with self.assertRaises(RecordValidationError) as ctx:
            normalize_record({"serial": "S" * 65})
        self.assertEqual(ctx.exception.code, "validation_error")

    def test_negative_numbers_are_treated_alike_as_text_and_numbers(self):
        as_text = normalize_record({"imei": "1", "quantity": "-5", "battery_health": "-10"})
        as_numbers = normalize_record({"imei": "1", "quantity": -5, "battery_health": -10})

        self.assertEqual((as_text.quantity, as_text.battery_health), (1, None))
        self.assertEqual((as_numbers.quantity, as_numbers.battery_health), (1, None))
        self.assertIsNone(parse_optional_int("-3 cycles"))
        self.assertEqual(parse_optional_int("cycles: 12"), 12)


class QueueStoreTests(TestCase):
    def test_enqueue_rejects_records_individually(self):
        records = [device_record("1"), {"model": "no id"}, device_record("2"), "garbage"]

        result = queue.enqueue(records)

        self.assertEqual(result.accepted, 2)
        self.assertEqual([item["index"] for item in result.rejected], [1, 3])
        self.assertTrue(all(item["code"] == "validation_error" for item in result.rejected))
        self.assertEqual(QueueRecord.objects.filter(batch_id=result.batch_id).count(), 2)
        self.assertEqual(
            set(QueueRecord.objects.values_list("device_id", flat=True)),
            {"1", "2"},
        )

    def test_over_long_device_id_does_not_abort_the_batch(self):
        records = [device_record("1"), device_record("X" * 65), device_record("2")]

        result = queue.enqueue(records, batch_size=2)

        self.assertEqual(result.accepted, 2)
        self.assertEqual([(item["index"], item["code"]) for item in result.rejected], [(1, "validation_error")])
        self.assertEqual(set(QueueRecord.objects.values_list("device_id", flat=True)), {"1", "2"})

    def test_enqueue_totals_do_not_depend_on_batch_size(self):
        records = [device_record(str(index)) for index in range(5)] + [{"color": "red"}]

        small = queue.enqueue(records, batch_size=2)
        large = queue.enqueue(records, batch_size=100)

        self.assertEqual((small.accepted, len(small.rejected)), (5, 1))
        self.assertEqual((large.accepted, len(large.rejected)), (5, 1))
        self.assertEqual(QueueRecord.objects.filter(status=QueueRecord.Status.PENDING).count(), 10)

    def test_claims_are_disjoint(self):
        queue.enqueue([device_record(str(index)) for index in range(10)])

        first = queue.claim_pending(6)
        second = queue.claim_pending(6)
        third = queue.claim_pending(6)

        first_ids = {record.id for record in first}
        second_ids = {record.id for record in second}
        self.assertEqual(len(first_ids), 6)
        self.assertEqual(len(second_ids), 4)
        self.assertFalse(first_ids & second_ids)
        self.assertEqual(third, [])
        self.assertEqual(QueueRecord.objects.filter(status=QueueRecord.Status.PROCESSING).count(), 10)
        self.assertTrue(all(record.attempts == 1 for record in first + second))
        self.assertEqual(QueueProcessingLog.objects.filter(action=QueueProcessingLog.Action.CLAIMED).count(), 10)

    def test_terminal_transitions_only_from_processing(self):
        queue.enqueue([device_record("1")])
        record = QueueRecord.objects.get()

        self.assertFalse(queue.mark_completed(record.id))
        queue.claim_pending(1)
        self.assertTrue(queue.mark_completed(record.id))
        self.assertFalse(queue.mark_completed(record.id))
        self.assertFalse(queue.mark_failed(record.id, "late failure"))

        record.refresh_from_db()
        self.assertEqual(record.status, QueueRecord.Status.COMPLETED)
        self.assertIsNotNone(record.processed_at)

    def test_stats_counts_every_status(self):
        queue.enqueue([device_record(str(index)) for index in range(4)])
        claimed = queue.claim_pending(2)
        queue.mark_completed(claimed[0].id)
        queue.mark_failed(claimed[1].id, "boom")

        self.assertEqual(
            queue.stats(),
            {"pending": 2, "processing": 0, "completed": 1, "failed": 1, "total": 4},
        )

    def test_manual_retry_resets_failed_rows(self):
        queue.enqueue([device_record("1"), device_record("2")])
        for record in queue.claim_pending(2):
            queue.mark_failed(record.id, "boom")

        self.assertEqual(queue.retry_failed(), 2)
        self.assertEqual(QueueRecord.objects.filter(status=QueueRecord.Status.PENDING).count(), 2)
        self.assertEqual(QueueProcessingLog.objects.filter(action=QueueProcessingLog.Action.RETRIED).count(), 2)
        self.assertEqual(queue.retry_failed(), 0)

    def test_failures_are_not_retried_automatically_by_default(self):
        queue.enqueue([device_record("1")])
        record = queue.claim_pending(1)[0]
        queue.mark_failed(record.id, "slow", code="timeout")

        record.refresh_from_db()
        self.assertIsNone(record.next_attempt_at)
        self.assertEqual(queue.requeue_due_failures(), 0)

    @override_settings(INTAKE_AUTO_RETRY=True, INTAKE_RETRY_BACKOFF_SECONDS=60, INTAKE_MAX_ATTEMPTS=3)
    def test_auto_retry_backs_off_for_retryable_codes(self):
        queue.enqueue([device_record("1"), device_record("2")])
        retryable, permanent = queue.claim_pending(2)
        before = timezone.now()
        queue.mark_failed(retryable.id, "slow", code="timeout")
        queue.mark_failed(permanent.id, "bad row", code="validation_error")

        retryable.refresh_from_db()
        permanent.refresh_from_db()
        self.assertIsNone(permanent.next_attempt_at)
        self.assertGreaterEqual(retryable.next_attempt_at, before + timedelta(seconds=59))
        self.assertEqual(queue.requeue_due_failures(), 0)

        QueueRecord.objects.filter(id=retryable.id).update(next_attempt_at=timezone.now() - timedelta(seconds=1))
        self.assertEqual(queue.requeue_due_failures(), 1)
        retryable.refresh_from_db()
        self.assertEqual(retryable.status, QueueRecord.Status.PENDING)

    @override_settings(INTAKE_AUTO_RETRY=True, INTAKE_RETRY_BACKOFF_SECONDS=10, INTAKE_MAX_ATTEMPTS=3)
    def test_auto_retry_stops_at_max_attempts(self):
        queue.enqueue([device_record("1")])
        record = queue.claim_pending(1)[0]
        QueueRecord.objects.filter(id=record.id).update(attempts=3)
        queue.mark_failed(record.id, "slow", code="conflict")

        record.refresh_from_db()
        self.assertIsNone(record.next_attempt_at)

    def test_release_stale_claims(self):
        queue.enqueue([device_record("1"), device_record("2")])
        stale, fresh = queue.claim_pending(2)
        QueueRecord.objects.filter(id=stale.id).update(claimed_at=timezone.now() - timedelta(hours=2))

        released = queue.release_stale_claims(older_than=timedelta(minutes=15))

        self.assertEqual(released, 1)
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(stale.status, QueueRecord.Status.PENDING)
        self.assertIsNone(stale.claim_token)
        self.assertEqual(fresh.status, QueueRecord.Status.PROCESSING)

    def test_prune_removes_old_terminal_rows_and_keeps_logs(self):
        queue.enqueue([device_record("1"), device_record("2"), device_record("3")])
        done, failed = queue.claim_pending(2)
        queue.mark_completed(done.id)
        queue.mark_failed(failed.id, "boom")
        QueueRecord.objects.update(updated_at=timezone.now() - timedelta(days=45))

        deleted = queue.prune_terminal(older_than_days=30)

        self.assertEqual(deleted, 2)
        self.assertEqual(QueueRecord.objects.count(), 1)
        self.assertEqual(QueueRecord.objects.get().status, QueueRecord.Status.PENDING)
        self.assertEqual(QueueProcessingLog.objects.filter(action=QueueProcessingLog.Action.PRUNED).count(), 2)
        self.assertTrue(QueueProcessingLog.objects.filter(queue_record_id=done.id, action="completed").exists())


class PipelineTests(TestCase):
    def test_drain_writes_every_table(self):
        queue.enqueue([device_record("355000000000100")])

        summary = drain_queue(limit=10)

        self.assertEqual((summary.claimed, summary.completed, summary.failed), (1, 1, 0))
        product = Product.objects.get(device_id="355000000000100")
        self.assertEqual(product.sku, "iPhone14Pro-256-BLK-UNL")
        self.assertEqual(product.generated_sku, product.sku)
        self.assertFalse(product.needs_review)
        attributes = DeviceAttributes.objects.get(product=product)
        self.assertEqual(attributes.battery_health, 91)
        self.assertEqual(attributes.location.name, "Shelf A")
        self.assertEqual(InspectionResult.objects.get(product=product).outcome, InspectionResult.Outcome.PASS)
        count = InventoryCount.objects.get(sku=product.sku, location__name="Shelf A")
        self.assertEqual((count.total, count.passed, count.failed, count.available), (1, 1, 0, 1))
        queue_record = QueueRecord.objects.get()
        self.assertEqual(queue_record.status, QueueRecord.Status.COMPLETED)
        movement = MovementRecord.objects.get(product=product)
        self.assertEqual(movement.queue_record_id, queue_record.id)
        completed_log = QueueProcessingLog.objects.get(action=QueueProcessingLog.Action.COMPLETED)
        self.assertIsNotNone(completed_log.duration_ms)

    def test_duplicate_device_updates_product_and_increments_count(self):
        queue.enqueue([device_record("123", quantity=1), device_record("123", quantity=1)])

        summary = drain_queue(limit=10)

        self.assertEqual(summary.completed, 2)
        self.assertEqual(Product.objects.filter(device_id="123").count(), 1)
        sku = Product.objects.get(device_id="123").sku
        self.assertEqual(InventoryCount.objects.get(sku=sku, location__name="Shelf A").total, 2)
        self.assertEqual(MovementRecord.objects.filter(product_id="123").count(), 2)

    def test_failure_in_inventory_step_rolls_back_every_write(self):
        queue.enqueue([device_record("355000000000200")])

        with patch("intake.pipeline.upsert_inventory_count", side_effect=DatabaseError("disk full")):
            summary = drain_queue(limit=10)

        self.assertEqual((summary.completed, summary.failed), (0, 1))
        self.assertEqual(summary.failures[0]["code"], "processing_error")
        self.assertFalse(Product.objects.exists())
        self.assertFalse(DeviceAttributes.objects.exists())
        self.assertFalse(InspectionResult.objects.exists())
        self.assertFalse(InventoryCount.objects.exists())
        self.assertFalse(MovementRecord.objects.exists())
        self.assertFalse(Location.objects.exists())
        record = QueueRecord.objects.get()
        self.assertEqual(record.status, QueueRecord.Status.FAILED)
        self.assertEqual(record.error_code, "processing_error")
        self.assertIn("upsert_inventory_count", record.error_message)

    def test_integrity_error_is_reported_as_conflict(self):
        queue.enqueue([device_record("355000000000201")])

        with patch("intake.pipeline.upsert_product", side_effect=IntegrityError("duplicate key")):
            drain_queue(limit=10)

        self.assertEqual(QueueRecord.objects.get().error_code, "conflict")

    def test_statement_timeout_is_reported_as_timeout(self):
        queue.enqueue([device_record("355000000000202")])
        error = OperationalError("canceling statement due to statement timeout")
        error.sqlstate = "57014"

        with patch("intake.pipeline.append_movement", side_effect=error):
            drain_queue(limit=10)

        record = QueueRecord.objects.get()
        self.assertEqual(record.error_code, "timeout")
        self.assertFalse(Product.objects.exists())

    def test_unexpected_exception_is_logged_and_recorded(self):
        queue.enqueue([device_record("355000000000203")])

        with patch("intake.pipeline.upsert_device_attributes", side_effect=RuntimeError("bug")):
            with self.assertLogs("intake.pipeline", level="ERROR") as logs:
                drain_queue(limit=10)

        self.assertTrue(any("queue_record_crashed" in line for line in logs.output))
        record = QueueRecord.objects.get()
        self.assertEqual(record.status, QueueRecord.Status.FAILED)
        self.assertIn("bug", record.error_message)

    def test_unparseable_payload_fails_with_validation_code(self):
        record = QueueRecord.objects.create(
            raw_payload={"model": "iPhone 12"},
            device_id="unknown",
            status=QueueRecord.Status.PROCESSING,
        )

        outcome = process_queue_record(record)

        self.assertEqual(outcome.status, "failed")
        self.assertEqual(outcome.error_code, "validation_error")
        record.refresh_from_db()
        self.assertEqual(record.status, QueueRecord.Status.FAILED)

    def test_released_claim_is_not_completed_by_the_old_drainer(self):
        queue.enqueue([device_record("355000000000205")])
        (claimed,) = queue.claim_pending(1)
        self.assertEqual(queue.release_stale_claims(older_than=timedelta(0)), 1)

        with self.assertLogs("intake.pipeline", level="WARNING") as logs:
            outcome = process_queue_record(claimed)

        self.assertEqual(outcome.status, "claim_lost")
        self.assertEqual(outcome.error_code, "conflict")
        self.assertTrue(any("queue_record_claim_lost" in line for line in logs.output))
        self.assertEqual(QueueRecord.objects.get().status, QueueRecord.Status.PENDING)
        self.assertFalse(Product.objects.exists())
        self.assertFalse(InventoryCount.objects.exists())
        self.assertFalse(MovementRecord.objects.exists())

        summary = drain_queue(limit=10)

        self.assertEqual((summary.claimed, summary.completed), (1, 1))
        self.assertEqual(QueueRecord.objects.get().status, QueueRecord.Status.COMPLETED)
        self.assertEqual(InventoryCount.objects.get().total, 1)
        self.assertEqual(MovementRecord.objects.count(), 1)

    def test_released_claim_is_not_failed_by_the_old_drainer(self):
        queue.enqueue([device_record("355000000000206")])
        (claimed,) = queue.claim_pending(1)
        queue.release_stale_claims(older_than=timedelta(0))
        queue.claim_pending(1)

        with patch("intake.pipeline.upsert_product", side_effect=IntegrityError("duplicate key")):
            outcome = process_queue_record(claimed)

        self.assertEqual(outcome.status, "claim_lost")
        record = QueueRecord.objects.get()
        self.assertEqual(record.status, QueueRecord.Status.PROCESSING)
        self.assertEqual(record.error_code, "")
        self.assertEqual(record.attempts, 2)

    def test_partial_sku_flags_product_for_review(self):
        queue.enqueue([{"imei": "355000000000204", "model": "Pixel 7"}])

        drain_queue(limit=10)

        product = Product.objects.get(device_id="355000000000204")
        self.assertTrue(product.sku.startswith("PARTIAL-"))
        self.assertTrue(product.needs_review)

    def test_drain_respects_limit(self):
        queue.enqueue([device_record(str(index)) for index in range(5)])

        summary = drain_queue(limit=2)

        self.assertEqual(summary.claimed, 2)
        self.assertEqual(QueueRecord.objects.filter(status=QueueRecord.Status.PENDING).count(), 3)

    @override_settings(INTAKE_SKU_MATCHER="intake.tests.confident_matcher")
    def test_confident_match_overrides_generated_sku(self):
        queue.enqueue([device_record("355000000000300")])

        drain_queue(limit=10)

        product = Product.objects.get(device_id="355000000000300")
        self.assertEqual(product.sku, "MASTER-SKU-1")
        self.assertEqual(product.generated_sku, "iPhone14Pro-256-BLK-UNL")
        self.assertFalse(product.needs_review)
        match = SkuMatchResult.objects.get(device_id="355000000000300")
        self.assertEqual(match.status, SkuMatchResult.Status.MATCHED)
        self.assertEqual(match.method, "exact")
        self.assertTrue(InventoryCount.objects.filter(sku="MASTER-SKU-1").exists())

    @override_settings(INTAKE_SKU_MATCHER="intake.tests.unsure_matcher")
    def test_review_match_keeps_generated_sku(self):
        queue.enqueue([device_record("355000000000301")])

        drain_queue(limit=10)

        product = Product.objects.get(device_id="355000000000301")
        self.assertEqual(product.sku, "iPhone14Pro-256-BLK-UNL")
        self.assertTrue(product.needs_review)
        self.assertEqual(
            SkuMatchResult.objects.get(device_id="355000000000301").status,
            SkuMatchResult.Status.MANUAL_REVIEW,
        )

    @override_settings(INTAKE_SKU_MATCHER="intake.tests.slow_matcher", INTAKE_EXTERNAL_TIMEOUT_SECONDS=0.05)
    def test_matcher_timeout_fails_record_as_retryable(self):
        queue.enqueue([device_record("355000000000302")])

        summary = drain_queue(limit=10)

        self.assertEqual(summary.failures[0]["code"], "timeout")
        self.assertFalse(Product.objects.exists())


class IntakeApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.operator = get_user_model().objects.create_user(username="operator", password="pass1234")
        self.supervisor = get_user_model().objects.create_user(
            username="supervisor",
            password="pass1234",
            role=User.Role.SUPERVISOR,
        )

    def test_enqueue_endpoint_reports_rejections_and_audits(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.post(
            "/api/v1/intake/records",
            {"records": [device_record("1"), {"model": "x"}], "source": "bulk"},
            format="json",
        )

        self.assertEqual(response.status_code, 202)
        payload = response.json()
        self.assertEqual(payload["accepted"], 1)
        self.assertEqual(payload["rejected"][0]["index"], 1)
        self.assertEqual(QueueRecord.objects.get().source, QueueRecord.Source.BULK)
        self.assertTrue(AuditLog.objects.filter(action="intake.enqueue", actor=self.operator).exists())

    def test_enqueue_with_process_drains_immediately(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.post(
            "/api/v1/intake/records",
            {"records": [device_record("2")], "process": True},
            format="json",
        )

        self.assertEqual(response.json()["drain"]["completed"], 1)
        self.assertTrue(Product.objects.filter(device_id="2").exists())

    def test_empty_payload_uses_error_envelope(self):
        self.client.force_authenticate(user=self.operator)

        response = self.client.post("/api/v1/intake/records", {"records": []}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("records", response.json()["errors"])

    def test_operator_cannot_drain_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.operator)

        with self.assertLogs("security.authorization", level="WARNING") as logs:
            response = self.client.post("/api/v1/intake/drain", {}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("intake.drain" in line for line in logs.output))

    def test_supervisor_drains_and_reads_stats(self):
        queue.enqueue([device_record("3"), device_record("4")])
        self.client.force_authenticate(user=self.supervisor)

        drain = self.client.post("/api/v1/intake/drain", {"limit": 5}, format="json")
        stats = self.client.get("/api/v1/intake/stats")

        self.assertEqual(drain.status_code, 200)
        self.assertEqual(drain.json()["completed"], 2)
        self.assertEqual(stats.json()["completed"], 2)

    def test_retry_failed_endpoint(self):
        queue.enqueue([device_record("5")])
        record = queue.claim_pending(1)[0]
        queue.mark_failed(record.id, "boom")
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post("/api/v1/intake/retry-failed", {"ids": [str(record.id)]}, format="json")

        self.assertEqual(response.json(), {"retried": 1})
        record.refresh_from_db()
        self.assertEqual(record.status, QueueRecord.Status.PENDING)

    def test_retrying_a_pending_record_is_a_conflict(self):
        queue.enqueue([device_record("6")])
        record = QueueRecord.objects.get()
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(f"/api/v1/intake/queue/{record.id}/retry/", {}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "conflict")

    def test_queue_listing_filters_by_status(self):
        queue.enqueue([device_record("7"), device_record("8")])
        queue.claim_pending(1)
        self.client.force_authenticate(user=self.operator)

        response = self.client.get("/api/v1/intake/queue/", {"status": "pending"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)


class ConcurrentClaimTests(TransactionTestCase):
    def test_parallel_claims_split_the_rows_without_overlap(self):
        queue.enqueue([device_record(f"35500000000200{index}") for index in range(10)])
        barrier = threading.Barrier(2)
        claimed = {}
        errors = []

        def claim(worker):
            try:
                barrier.wait(timeout=10)
                claimed[worker] = [str(record.id) for record in queue.claim_pending(10)]
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        workers = [threading.Thread(target=claim, args=(name,)) for name in ("a", "b")]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        self.assertEqual(errors, [])
        combined = claimed["a"] + claimed["b"]
        self.assertEqual(len(combined), 10)
        self.assertEqual(len(set(combined)), 10)
        self.assertEqual(QueueRecord.objects.filter(status=QueueRecord.Status.PROCESSING).count(), 10)
        self.assertEqual(QueueProcessingLog.objects.filter(action=QueueProcessingLog.Action.CLAIMED).count(), 10)
