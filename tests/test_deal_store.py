# tests/test_deal_store.py

"""Tests for the SQLite deal store."""

import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from dealwatch.storage.deal_store import (
    DealStore,
    DuplicateProductError,
    ProductInUseError,
    RecordNotFoundError,
    slugify,
)


class TestSlugify(unittest.TestCase):
    """Tests for URL slug generation."""

    def test_accents_and_punctuation(self) -> None:
        self.assertEqual(slugify("Café & Pão!"), "cafe-pao")

    def test_collapses_separators(self) -> None:
        self.assertEqual(slugify("  TV   50''  4K "), "tv-50-4k")


class TestDealStore(unittest.TestCase):
    """Tests for the DealStore class."""

    def setUp(self) -> None:
        """Create a fresh temp DB for each test."""
        self.tmp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.tmp_dir) / "test.db"
        self.store = DealStore(db_path=self.db_path)
        self.shop = self.store.create_store("Loja Centro")

    def tearDown(self) -> None:
        """Close the database."""
        self.store.close()

    def test_store_roundtrip(self) -> None:
        created = self.store.create_store(
            "Mega Loja", feed_url="https://feed", feed_type="csv",
            feed_mapping={"price": "preco"},
        )
        loaded = self.store.get_store(created.id)
        self.assertEqual(loaded.slug, "mega-loja")
        self.assertEqual(loaded.feed_mapping, {"price": "preco"})
        self.assertIsNone(loaded.last_feed_sync)

    def test_update_store_feed(self) -> None:
        synced = datetime(2026, 3, 1, 8, 0)
        self.store.update_store_feed(
            self.shop.id, "https://f", "json", {"name": "titulo"}, synced,
        )
        loaded = self.store.get_store(self.shop.id)
        self.assertEqual(loaded.feed_type, "json")
        self.assertEqual(loaded.last_feed_sync, synced)

    def test_unknown_ids_raise(self) -> None:
        with self.assertRaises(RecordNotFoundError):
            self.store.get_store(999)
        with self.assertRaises(RecordNotFoundError):
            self.store.get_product(999)
        with self.assertRaises(LookupError):
            self.store.get_promotion(999)

    def test_category_get_or_create(self) -> None:
        first = self.store.get_or_create_category("Eletrônicos")
        second = self.store.get_or_create_category("eletronicos")
        self.assertEqual(first.id, second.id)

    def test_duplicate_external_id_detected(self) -> None:
        self.store.create_product(self.shop.id, "A", 10, external_id="X1")
        with self.assertRaises(DuplicateProductError):
            self.store.create_product(
                self.shop.id, "A again", 11, external_id="X1",
            )

    def test_same_external_id_in_other_store(self) -> None:
        other = self.store.create_store("Outra Loja")
        self.store.create_product(self.shop.id, "A", 10, external_id="X1")
        product = self.store.create_product(
            other.id, "A", 12, external_id="X1",
        )
        self.assertEqual(product.store_id, other.id)

    def test_products_without_external_id_not_unique(self) -> None:
        self.store.create_product(self.shop.id, "A", 10)
        self.store.create_product(self.shop.id, "B", 10)
        self.assertEqual(len(self.store.list_active_products()), 2)

    def test_find_by_external_id_and_barcode(self) -> None:
        created = self.store.create_product(
            self.shop.id, "Fone", 99, external_id="F1", barcode="789",
        )
        self.assertEqual(
            self.store.find_product_by_external_id(self.shop.id, "F1"),
            created,
        )
        self.assertEqual(
            self.store.find_product_by_barcode(self.shop.id, "789"),
            created,
        )
        self.assertIsNone(
            self.store.find_product_by_barcode(self.shop.id, "000")
        )

    def test_list_active_products_by_name_terms(self) -> None:
        self.store.create_product(self.shop.id, "Smart TV Samsung", 10)
        self.store.create_product(self.shop.id, "Geladeira Brastemp", 10)
        found = self.store.list_active_products(name_terms=["samsung"])
        self.assertEqual([p.name for p in found], ["Smart TV Samsung"])

    def test_price_points_window_and_order(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        now = datetime(2026, 6, 1)
        for days_ago, price in ((100, 1), (5, 3), (10, 2)):
            self.store.append_price_point(
                product.id, price, "feed",
                recorded_at=now - timedelta(days=days_ago),
            )
        points = self.store.get_price_points(
            product.id, since=now - timedelta(days=90),
        )
        self.assertEqual([p.price for p in points], [2, 3])
        newest = self.store.get_price_points(
            product.id, newest_first=True, limit=1,
        )
        self.assertEqual(newest[0].price, 3)

    def test_created_rows_get_integer_ids(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        point = self.store.append_price_point(product.id, 10, "manual")
        promo = self.store.create_promotion(product.id, "Promo", 8, 10)
        for row_id in (self.shop.id, product.id, point.id, promo.id):
            self.assertIsInstance(row_id, int)
            self.assertGreater(row_id, 0)
        self.assertEqual(
            self.store.get_price_points(product.id)[0].id, point.id,
        )

    def test_price_point_must_be_positive(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        with self.assertRaises(ValueError):
            self.store.append_price_point(product.id, -1, "manual")

    def test_delete_blocked_by_history(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        self.store.append_price_point(product.id, 10, "manual")
        with self.assertRaises(ProductInUseError):
            self.store.delete_product(product.id)
        self.store.get_product(product.id)

    def test_delete_cascade(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        self.store.append_price_point(product.id, 10, "manual")
        self.store.create_promotion(product.id, "Promo", 8, 10)
        self.store.delete_product(product.id, cascade=True)
        with self.assertRaises(RecordNotFoundError):
            self.store.get_product(product.id)
        self.assertEqual(self.store.count_price_points(product.id), 0)
        self.assertEqual(self.store.list_promotions(product.id), [])

    def test_delete_without_evidence(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        self.store.delete_product(product.id)
        with self.assertRaises(RecordNotFoundError):
            self.store.get_product(product.id)

    def test_promotion_discount_derived(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        promo = self.store.create_promotion(product.id, "Promo", 75, 100)
        self.assertEqual(promo.discount_percent, 25)
        self.assertIsNone(promo.deal_score)

    def test_promotion_update_recomputes_discount(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        promo = self.store.create_promotion(product.id, "Promo", 75, 100)
        updated = self.store.update_promotion(promo.id, promotion_price=50)
        self.assertEqual(updated.discount_percent, 50)

    def test_promotion_update_rejects_derived_fields(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        promo = self.store.create_promotion(product.id, "Promo", 75, 100)
        with self.assertRaises(ValueError):
            self.store.update_promotion(promo.id, discount_percent=90)

    def test_promotion_requires_positive_original(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        with self.assertRaises(ValueError):
            self.store.create_promotion(product.id, "Promo", 5, 0)

    def test_deactivate_promotion(self) -> None:
        product = self.store.create_product(self.shop.id, "A", 10)
        promo = self.store.create_promotion(product.id, "Promo", 8, 10)
        self.store.deactivate_promotion(promo.id)
        self.assertEqual(self.store.list_promotions(active_only=True), [])
        self.assertFalse(self.store.get_promotion(promo.id).is_active)

    def test_context_manager_closes(self) -> None:
        with DealStore(db_path=Path(self.tmp_dir) / "ctx.db") as store:
            store.create_store("Ctx")
        reopened = DealStore(db_path=Path(self.tmp_dir) / "ctx.db")
        self.assertEqual(len(reopened.list_stores()), 1)
        reopened.close()


if __name__ == "__main__":
    unittest.main()
