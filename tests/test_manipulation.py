# tests/test_manipulation.py

"""Tests for the inflate-then-discount pattern detector."""

import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from dealwatch.analysis.manipulation import (
    ManipulationDetector,
    detect_manipulation,
    find_manipulation,
)
from dealwatch.storage.deal_store import DealStore


class TestFindManipulation(unittest.TestCase):
    """Pure pattern matching over a price series."""

    def test_spike_and_return_triple(self) -> None:
        """100 -> 130 (+30%) -> 105 (-19.2%, within 10% of 100)."""
        self.assertEqual(find_manipulation([100, 130, 105], min_points=3), 2)

    def test_triple_inside_longer_series(self) -> None:
        self.assertTrue(detect_manipulation([100, 100, 100, 130, 105]))

    def test_monotonic_decrease(self) -> None:
        self.assertFalse(detect_manipulation([100, 90, 80, 70, 60]))

    def test_too_few_points(self) -> None:
        """The positive triple alone is not enough evidence."""
        self.assertFalse(detect_manipulation([100, 130, 105]))
        self.assertFalse(detect_manipulation([100, 100, 130, 105]))

    def test_spike_not_large_enough(self) -> None:
        """+20% exactly does not count as a spike."""
        self.assertFalse(detect_manipulation([100, 100, 100, 120, 100]))

    def test_no_return_to_baseline(self) -> None:
        """Drop after the spike lands more than 10% off the baseline."""
        self.assertFalse(detect_manipulation([100, 100, 100, 150, 120]))

    def test_first_match_wins(self) -> None:
        prices = [100, 130, 105, 100, 140, 100]
        self.assertEqual(find_manipulation(prices), 2)


class TestManipulationDetector(unittest.TestCase):
    """Window queries against a real SQLite store."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = DealStore(db_path=Path(self.tmp_dir) / "test.db")
        shop = self.store.create_store("Loja A")
        self.product = self.store.create_product(shop.id, "Air Fryer", 100)
        self.detector = ManipulationDetector(self.store)
        self.now = datetime(2026, 6, 1, 12, 0)

    def tearDown(self) -> None:
        self.store.close()

    def _series(self, prices: list[float], start_days_ago: int) -> None:
        for offset, price in enumerate(prices):
            self.store.append_price_point(
                self.product.id, price, "feed",
                recorded_at=self.now - timedelta(
                    days=start_days_ago - offset,
                ),
            )

    def test_pattern_in_window(self) -> None:
        self._series([100, 100, 100, 130, 105], 10)
        self.assertTrue(
            self.detector.is_manipulated(self.product.id, now=self.now)
        )

    def test_pattern_outside_window(self) -> None:
        """A spike 60 days ago does not taint the 30-day window."""
        self._series([100, 130, 105], 60)
        self._series([100, 100, 100, 100, 100], 10)
        self.assertFalse(
            self.detector.is_manipulated(self.product.id, now=self.now)
        )


if __name__ == "__main__":
    unittest.main()
