from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from inventory.matching import SkuMatch, classify, coerce_match
from inventory.models import InventoryCount, Location, MovementRecord, Product, SkuMatchResult, Working
from inventory.services import (
    MOVEMENT_RECEIVED,
    MOVEMENT_RELOCATED,
    MOVEMENT_REPROCESSED,
    append_movement,
    resolve_location,
    upsert_inventory_count,
    upsert_product,
)
from inventory.sku import UNKNOWN_SKU, generate_sku, is_partial_sku


class SkuGeneratorTests(SimpleTestCase):
    def test_full_record_produces_well_formed_sku(self):
        sku = generate_sku("Apple", "iPhone 14 Pro", "256GB", "Space Black", "Unlocked")

        self.assertEqual(sku, "iPhone14Pro-256-BLK-UNL")
        self.assertFalse(is_partial_sku(sku))

    def test_same_inputs_always_give_same_sku(self):
        args = ("Samsung", "Galaxy S23", "512 GB", "Phantom Green", "T-Mobile")

        self.assertEqual(generate_sku(*args), generate_sku(*args))
        self.assertEqual(generate_sku(*args), "GalaxyS23-512-GRN-TMO")

    def test_carrier_table_and_fallback(self):
        self.assertTrue(generate_sku("Apple", "iPhone 12", "64", "Red", "AT&T").endswith("-ATT"))
        self.assertTrue(generate_sku("Apple", "iPhone 12", "64", "Red", "Verizon").endswith("-VZW"))
        self.assertTrue(generate_sku("Apple", "iPhone 12", "64", "Red", "Cricket").endswith("-CRI"))

    def test_unmapped_color_uses_first_three_letters(self):
        self.assertEqual(generate_sku("Apple", "iPhone 13", "128GB", "Midnight", "Unlocked"), "iPhone13-128-MID-UNL")

    def test_missing_components_are_omitted_and_marked_partial(self):
        sku = generate_sku("Unknown", "Pixel 7", "Unknown", "Obsidian", "")

        self.assertEqual(sku, "PARTIAL-Pixel7-OBS")
        self.assertTrue(is_partial_sku(sku))
        self.assertNotIn("--", sku)

    def test_nothing_available_yields_unknown_marker(self):
        self.assertEqual(generate_sku(None, None, None, None, None), UNKNOWN_SKU)
        self.assertEqual(generate_sku("", "N/A", "unknown", " ", None), UNKNOWN_SKU)


class SkuMatchClassificationTests(SimpleTestCase):
    def test_high_confidence_match_overrides_sku(self):
        decision = classify("iPhone14-128-BLK-UNL", SkuMatch(matched_sku="IP14-128-BLK", confidence=0.93))

        self.assertEqual(decision.status, SkuMatchResult.Status.MATCHED)
        self.assertEqual(decision.sku, "IP14-128-BLK")
        self.assertFalse(decision.needs_review)

    def test_medium_confidence_keeps_generated_sku_for_review(self):
        decision = classify("iPhone14-128-BLK-UNL", SkuMatch(matched_sku="IP14-128-BLK", confidence=0.7))

        self.assertEqual(decision.status, SkuMatchResult.Status.MANUAL_REVIEW)
        self.assertEqual(decision.sku, "iPhone14-128-BLK-UNL")
        self.assertTrue(decision.needs_review)

    def test_low_confidence_and_missing_match_are_no_match(self):
        low = classify("A-1", SkuMatch(matched_sku="B-2", confidence=0.2))
        missing = classify("A-1", None)

        self.assertEqual(low.status, SkuMatchResult.Status.NO_MATCH)
        self.assertEqual(missing.status, SkuMatchResult.Status.NO_MATCH)
        self.assertEqual(missing.sku, "A-1")

    @override_settings(INTAKE_SKU_MATCH_THRESHOLD=0.95, INTAKE_SKU_REVIEW_THRESHOLD=0.5)
    def test_thresholds_come_from_settings(self):
        decision = classify("A-1", SkuMatch(matched_sku="B-2", confidence=0.9))

        self.assertEqual(decision.status, SkuMatchResult.Status.MANUAL_REVIEW)

    def test_camel_case_mapping_is_accepted(self):
        match = coerce_match({"matchedSku": "IP14-128", "confidenceScore": 0.88, "method": "fuzzy"})

        self.assertEqual(match.matched_sku, "IP14-128")
        self.assertAlmostEqual(match.confidence, 0.88)
        self.assertEqual(match.method, "fuzzy")
        self.assertIsNone(coerce_match({"matchedSku": ""}))


class InventoryServiceTests(TestCase):
    def setUp(self):
        self.location = resolve_location("Shelf A")

    def test_resolve_location_creates_once(self):
        again = resolve_location(" Shelf A ")

        self.assertEqual(again.id, self.location.id)
        self.assertEqual(Location.objects.filter(name="Shelf A").count(), 1)

    def test_inventory_count_inserts_then_increments(self):
        upsert_inventory_count("SKU-1", self.location, 1, Working.YES)
        count = upsert_inventory_count("SKU-1", self.location, 2, Working.NO)

        self.assertEqual(InventoryCount.objects.count(), 1)
        self.assertEqual(count.total, 3)
        self.assertEqual(count.passed, 1)
        self.assertEqual(count.failed, 2)
        self.assertEqual(count.available, 1)

    def test_available_never_goes_negative(self):
        count = upsert_inventory_count("SKU-2", self.location, 1, Working.NO)
        count.reserved = 5
        count.recompute_available()

        self.assertEqual(count.available, 0)

    def test_pending_units_count_towards_total_only(self):
        count = upsert_inventory_count("SKU-3", self.location, 4, Working.PENDING)

        self.assertEqual((count.total, count.passed, count.failed, count.available), (4, 0, 0, 4))

    def test_upsert_product_updates_existing_row(self):
        product, created = upsert_product("355000000000001", sku="A", generated_sku="A", brand="Apple", display_name="x")
        updated, created_again = upsert_product(
            "355000000000001", sku="B", generated_sku="B", brand="Apple", display_name="y"
        )

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(updated.id, product.id)
        self.assertEqual(Product.objects.get(device_id="355000000000001").sku, "B")
        self.assertGreaterEqual(updated.updated_at, product.created_at)

    def test_movement_status_follows_location_history(self):
        product, _ = upsert_product("355000000000002", sku="A", generated_sku="A", brand="Apple", display_name="x")
        other = resolve_location("Shelf B")

        first = append_movement(product, self.location)
        second = append_movement(product, other)
        third = append_movement(product, other)

        self.assertEqual((first.status, first.from_location), (MOVEMENT_RECEIVED, None))
        self.assertEqual((second.status, second.from_location_id), (MOVEMENT_RELOCATED, self.location.id))
        self.assertEqual(third.status, MOVEMENT_REPROCESSED)
        self.assertEqual(MovementRecord.objects.filter(product=product).count(), 3)


class InventoryApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username="viewer", password="pass1234")
        location = resolve_location("Shelf A")
        upsert_product("355000000000003", sku="PARTIAL-X", generated_sku="PARTIAL-X", brand="Apple", display_name="x", needs_review=True)
        upsert_product("355000000000004", sku="Y-1", generated_sku="Y-1", brand="Google", display_name="y")
        upsert_inventory_count("Y-1", location, 1, Working.YES)

    def test_requires_authentication(self):
        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")

    def test_product_list_filters_partial_skus(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get("/api/v1/products/", {"partial": "true"})

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual([row["device_id"] for row in results], ["355000000000003"])
        self.assertTrue(results[0]["is_partial_sku"])

    def test_product_detail_is_looked_up_by_device_id(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get("/api/v1/products/355000000000004/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["sku"], "Y-1")
        self.assertIsNone(response.json()["attributes"])

    def test_inventory_counts_are_read_only(self):
        self.client.force_authenticate(user=self.user)
        listing = self.client.get("/api/v1/inventory-counts/", {"sku": "Y-1"})
        create = self.client.post("/api/v1/inventory-counts/", {"sku": "Z"}, format="json")

        self.assertEqual(listing.json()["results"][0]["available"], 1)
        self.assertEqual(create.status_code, 405)
