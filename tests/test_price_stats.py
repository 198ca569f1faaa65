# tests/test_price_stats.py

"""Tests for the price statistics engine."""

import math
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from dealwatch.analysis.price_stats import (
    PriceStatsEngine,
    classify_trend,
    compute_price_stats,
)
from dealwatch.storage.deal_store import DealStore


class TestComputePriceStats(unittest.TestCase):
    """Pure statistics over a chronological series."""

    def test_three_point_series(self) -> None:
        stats = compute_price_stats([10, 20, 30])
        assert stats is not None
        self.assertEqual(stats.average, 20)
        self.assertEqual(stats.median, 20)
        self.assertEqual(stats.lowest, 10)
        self.assertEqual(stats.highest, 30)
        self.assertAlmostEqual(
            stats.standard_deviation, math.sqrt(200 / 3), places=6,
        )
        self.assertAlmostEqual(stats.standard_deviation, 8.165, places=3)
        self.assertEqual(stats.sample_size, 3)

    def test_even_count_median(self) -> None:
        stats = compute_price_stats([40, 10, 30, 20])
        assert stats is not None
        self.assertEqual(stats.median, 25)

    def test_insufficient_data(self) -> None:
        for prices in ([], [10.0], [10.0, 20.0]):
            with self.subTest(n=len(prices)):
                self.assertIsNone(compute_price_stats(prices))

    def test_constant_series_has_zero_deviation(self) -> None:
        stats = compute_price_stats([50, 50, 50, 50])
        assert stats is not None
        self.assertEqual(stats.standard_deviation, 0)
        self.assertEqual(stats.recent_trend, "stable")


class TestClassifyTrend(unittest.TestCase):
    """Recent sub-window against the full-window average."""

    def test_rising(self) -> None:
        prices = [100.0] * 10 + [130.0] * 7
        average = sum(prices) / len(prices)
        self.assertEqual(classify_trend(prices, average), "rising")

    def test_falling(self) -> None:
        prices = [100.0] * 10 + [70.0] * 7
        average = sum(prices) / len(prices)
        self.assertEqual(classify_trend(prices, average), "falling")

    def test_within_deadband_is_stable(self) -> None:
        prices = [100.0] * 10 + [104.0] * 7
        average = sum(prices) / len(prices)
        self.assertEqual(classify_trend(prices, average), "stable")

    def test_short_series_uses_all_points(self) -> None:
        """With fewer than 7 points the recent average is the average."""
        prices = [10.0, 20.0, 30.0]
        self.assertEqual(classify_trend(prices, 20.0), "stable")


class TestPriceStatsEngine(unittest.TestCase):
    """Window queries against a real SQLite store."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = DealStore(db_path=Path(self.tmp_dir) / "test.db")
        shop = self.store.create_store("Loja A")
        self.product = self.store.create_product(shop.id, "Cafeteira", 100)
        self.engine = PriceStatsEngine(self.store)
        self.now = datetime(2026, 6, 1, 12, 0)

    def tearDown(self) -> None:
        self.store.close()

    def _add(self, price: float, days_ago: int) -> None:
        self.store.append_price_point(
            self.product.id, price, "feed",
            recorded_at=self.now - timedelta(days=days_ago),
        )

    def test_out_of_window_points_ignored(self) -> None:
        self._add(500, 120)
        for days_ago, price in ((30, 10), (20, 20), (10, 30)):
            self._add(price, days_ago)
        stats = self.engine.get_price_stats(self.product.id, now=self.now)
        assert stats is not None
        self.assertEqual(stats.highest, 30)
        self.assertEqual(stats.sample_size, 3)

    def test_custom_window(self) -> None:
        for days_ago, price in ((40, 10), (20, 20), (10, 30)):
            self._add(price, days_ago)
        self.assertIsNone(
            self.engine.get_price_stats(
                self.product.id, days=30, now=self.now,
            )
        )

    def test_no_history(self) -> None:
        self.assertIsNone(
            self.engine.get_price_stats(self.product.id, now=self.now)
        )


if __name__ == "__main__":
    unittest.main()
