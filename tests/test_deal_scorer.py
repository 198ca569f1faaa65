# tests/test_deal_scorer.py

"""Tests for deal scoring, verdict and recommendation buckets."""

import tempfile
import unittest
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path

from dealwatch.analysis.deal_scorer import (
    INSUFFICIENT_HISTORY_TEXT,
    DealScorer,
    ScoringWeights,
    recommend,
    score_deal,
)
from dealwatch.models.analysis import PriceStats
from dealwatch.storage.deal_store import DealStore, RecordNotFoundError


def _stats(**overrides: object) -> PriceStats:
    """Average 100, lowest 80, highest 120, stable trend."""
    base = PriceStats(
        average=100.0,
        lowest=80.0,
        highest=120.0,
        median=100.0,
        standard_deviation=14.0,
        recent_trend="stable",
        sample_size=5,
    )
    return replace(base, **overrides)  # type: ignore[arg-type]


class TestScoreDeal(unittest.TestCase):
    """Pure scoring over precomputed statistics."""

    def test_all_time_low_is_real_deal(self) -> None:
        """50 + min(20*1.5, 30) + 20 all-time-low bonus = 100."""
        result = score_deal(_stats(), False, 80.0, 120.0)
        self.assertEqual(result.deal_score, 100)
        self.assertTrue(result.is_real_deal)
        self.assertEqual(result.discount_from_average, 20.0)
        self.assertEqual(result.discount_from_lowest, 0.0)
        self.assertEqual(result.recommendation, "excellent")
        self.assertTrue(result.analysis.startswith("🔥 ALL-TIME LOW!"))

    def test_manipulation_blocks_verdict_despite_score(self) -> None:
        """Score 75 with manipulation is never a real deal."""
        result = score_deal(_stats(), True, 80.0, 120.0)
        self.assertEqual(result.deal_score, 75)
        self.assertFalse(result.is_real_deal)
        self.assertTrue(result.price_manipulation_detected)
        self.assertEqual(result.recommendation, "suspicious")
        self.assertIn("manipulation", result.analysis)

    def test_implausible_original_blocks_verdict(self) -> None:
        """Claimed original above 110% of the highest is inflated."""
        result = score_deal(_stats(), False, 80.0, 200.0)
        self.assertEqual(result.deal_score, 85)
        self.assertFalse(result.is_real_deal)
        self.assertIn("inflated", result.analysis)

    def test_plausibility_boundary(self) -> None:
        """Exactly 110% of the highest is still plausible."""
        result = score_deal(_stats(), False, 80.0, 132.0)
        self.assertTrue(result.is_real_deal)

    def test_small_discount_blocks_verdict(self) -> None:
        """A 5% discount from average is not enough, whatever the score."""
        result = score_deal(
            _stats(lowest=95.0), False, 95.0, 100.0,
        )
        self.assertEqual(result.deal_score, 78)
        self.assertFalse(result.is_real_deal)

    def test_near_low_bonus(self) -> None:
        """Within 5% of the lowest earns +10 instead of +20."""
        result = score_deal(_stats(), False, 84.0, 120.0)
        self.assertEqual(result.deal_score, 84)

    def test_above_average_penalty_capped(self) -> None:
        result = score_deal(_stats(), False, 150.0, 120.0)
        self.assertEqual(result.deal_score, 20)
        self.assertEqual(result.recommendation, "avoid")
        self.assertIn("above the historical average", result.analysis)

    def test_trend_adjustments(self) -> None:
        falling = score_deal(_stats(recent_trend="falling"), False, 90, 100)
        rising = score_deal(_stats(recent_trend="rising"), False, 90, 100)
        self.assertEqual(falling.deal_score, 70)
        self.assertEqual(rising.deal_score, 60)
        self.assertIn("falling", falling.analysis)
        self.assertIn("rising", rising.analysis)

    def test_score_clamped_to_zero(self) -> None:
        result = score_deal(_stats(), True, 150.0, 500.0)
        self.assertEqual(result.deal_score, 0)

    def test_clause_order(self) -> None:
        result = score_deal(
            _stats(recent_trend="falling"), True, 80.0, 500.0,
        )
        text = result.analysis
        self.assertLess(text.index("ALL-TIME LOW"), text.index("WARNING"))
        self.assertLess(text.index("WARNING"), text.index("inflated"))
        self.assertLess(text.index("inflated"), text.index("Trend"))

    def test_insufficient_stats_is_neutral(self) -> None:
        result = score_deal(None, False, 80.0, 120.0)
        self.assertEqual(result.deal_score, 50)
        self.assertFalse(result.is_real_deal)
        self.assertEqual(result.recommendation, "average")
        self.assertEqual(result.analysis, INSUFFICIENT_HISTORY_TEXT)

    def test_custom_weights(self) -> None:
        weights = ScoringWeights(all_time_low_bonus=0.0)
        result = score_deal(_stats(), False, 80.0, 120.0, weights)
        self.assertEqual(result.deal_score, 80)


class TestRecommend(unittest.TestCase):
    """Bucket boundaries are inclusive lower bounds."""

    def test_buckets(self) -> None:
        cases = [
            (100, "excellent"), (80, "excellent"), (79.9, "good"),
            (65, "good"), (45, "average"), (44, "suspicious"),
            (30, "suspicious"), (29, "avoid"), (0, "avoid"),
        ]
        for score, expected in cases:
            with self.subTest(score=score):
                self.assertEqual(recommend(score, False), expected)

    def test_manipulation_overrides_score(self) -> None:
        self.assertEqual(recommend(95, True), "suspicious")


class TestDealScorer(unittest.TestCase):
    """End-to-end analysis against a real SQLite store."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = DealStore(db_path=Path(self.tmp_dir) / "test.db")
        shop = self.store.create_store("Loja A")
        self.product = self.store.create_product(shop.id, "Monitor", 100)
        self.scorer = DealScorer(self.store)
        self.now = datetime.now()

    def tearDown(self) -> None:
        self.store.close()

    def _history(self, prices: list[float]) -> None:
        for offset, price in enumerate(prices):
            self.store.append_price_point(
                self.product.id, price, "feed",
                recorded_at=self.now - timedelta(days=len(prices) - offset),
            )

    def test_two_points_gives_neutral_result(self) -> None:
        self._history([100, 90])
        result = self.scorer.analyze(self.product.id, 80, 120)
        self.assertEqual(result.deal_score, 50)
        self.assertFalse(result.is_real_deal)

    def test_real_history(self) -> None:
        self._history([100, 100, 100, 100, 100])
        result = self.scorer.analyze(self.product.id, 80, 110)
        # 50 + 30 + 20, trend stable
        self.assertEqual(result.deal_score, 100)
        self.assertTrue(result.is_real_deal)

    def test_manipulated_history(self) -> None:
        self._history([100, 100, 100, 130, 105])
        result = self.scorer.analyze(self.product.id, 90, 130)
        self.assertTrue(result.price_manipulation_detected)
        self.assertFalse(result.is_real_deal)
        self.assertEqual(result.recommendation, "suspicious")

    def test_unknown_product(self) -> None:
        with self.assertRaises(RecordNotFoundError):
            self.scorer.analyze(999, 10, 20)


if __name__ == "__main__":
    unittest.main()
