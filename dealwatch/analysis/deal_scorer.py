# dealwatch/analysis/deal_scorer.py

"""Deal scoring: turn price history evidence into a score and verdict."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from dealwatch.analysis.manipulation import ManipulationDetector
from dealwatch.analysis.price_stats import PriceStatsEngine
from dealwatch.config.settings import Settings
from dealwatch.models.analysis import PriceAnalysis, PriceStats, Recommendation
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.analysis")

INSUFFICIENT_HISTORY_TEXT = (
    "Not enough price history for a full analysis. "
    "Wait for more data before trusting this discount."
)


@dataclass(frozen=True)
class ScoringWeights:
    """Empirical scoring constants.

    The defaults reproduce the historical behaviour exactly; change
    them only together with a product decision.
    """

    base: float = Settings.SCORE_BASE
    below_avg_multiplier: float = Settings.SCORE_BELOW_AVG_MULTIPLIER
    below_avg_cap: float = Settings.SCORE_BELOW_AVG_CAP
    above_avg_multiplier: float = Settings.SCORE_ABOVE_AVG_MULTIPLIER
    above_avg_cap: float = Settings.SCORE_ABOVE_AVG_CAP
    all_time_low_bonus: float = Settings.SCORE_ALL_TIME_LOW_BONUS
    near_low_bonus: float = Settings.SCORE_NEAR_LOW_BONUS
    near_low_factor: float = Settings.SCORE_NEAR_LOW_FACTOR
    manipulation_penalty: float = Settings.SCORE_MANIPULATION_PENALTY
    inflated_original_penalty: float = (
        Settings.SCORE_INFLATED_ORIGINAL_PENALTY
    )
    trend_adjustment: float = Settings.SCORE_TREND_ADJUSTMENT
    original_price_tolerance: float = Settings.ORIGINAL_PRICE_TOLERANCE
    real_deal_min_score: float = Settings.REAL_DEAL_MIN_SCORE
    real_deal_min_discount: float = Settings.REAL_DEAL_MIN_DISCOUNT
    cutoffs: dict[str, float] = field(
        default_factory=lambda: dict(Settings.RECOMMENDATION_CUTOFFS)
    )


DEFAULT_WEIGHTS = ScoringWeights()


def _round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def neutral_analysis() -> PriceAnalysis:
    """Fixed result returned when the history is too short to judge."""
    return PriceAnalysis(
        is_real_deal=False,
        deal_score=50,
        discount_from_average=0.0,
        discount_from_lowest=0.0,
        price_manipulation_detected=False,
        recommendation="average",
        analysis=INSUFFICIENT_HISTORY_TEXT,
    )


def recommend(
    score: float,
    manipulation_detected: bool,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Recommendation:
    """Bucket a score; detected manipulation always reads as suspicious."""
    if manipulation_detected:
        return "suspicious"
    cutoffs = weights.cutoffs
    if score >= cutoffs["excellent"]:
        return "excellent"
    if score >= cutoffs["good"]:
        return "good"
    if score >= cutoffs["average"]:
        return "average"
    if score >= cutoffs["suspicious"]:
        return "suspicious"
    return "avoid"


def describe(
    stats: PriceStats,
    current_price: float,
    discount_from_average: float,
    manipulation_detected: bool,
    original_plausible: bool,
) -> str:
    """Assemble the analysis text from independent clauses."""
    if current_price <= stats.lowest:
        parts = ["🔥 ALL-TIME LOW! This is the best moment to buy."]
    elif discount_from_average > 20:
        parts = ["✨ Excellent deal! Price far below the historical average."]
    elif discount_from_average > 10:
        parts = ["👍 Good deal! Price below the historical average."]
    elif discount_from_average > 0:
        parts = ["📊 Modest deal. Price slightly below the average."]
    else:
        parts = ["⚠️ Price above the historical average."]

    if manipulation_detected:
        parts.append(
            "🚨 WARNING: possible recent price manipulation detected."
        )
    if not original_plausible:
        parts.append('⚠️ The claimed "original price" looks inflated.')
    if stats.recent_trend == "falling":
        parts.append("📉 Trend: prices falling.")
    elif stats.recent_trend == "rising":
        parts.append("📈 Trend: prices rising.")
    return " ".join(parts)


def score_deal(
    stats: PriceStats | None,
    manipulation_detected: bool,
    current_price: float,
    claimed_original_price: float,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> PriceAnalysis:
    """Score a claimed discount against the product's price statistics.

    Pure function: ``stats`` of ``None`` yields the neutral result.
    """
    if stats is None:
        return neutral_analysis()

    discount_from_average = (
        (stats.average - current_price) / stats.average * 100
    )
    discount_from_lowest = (
        (stats.lowest - current_price) / stats.lowest * 100
    )
    original_plausible = (
        claimed_original_price
        <= stats.highest * weights.original_price_tolerance
    )

    score = weights.base
    if discount_from_average > 0:
        score += min(
            discount_from_average * weights.below_avg_multiplier,
            weights.below_avg_cap,
        )
    else:
        score += max(
            discount_from_average * weights.above_avg_multiplier,
            -weights.above_avg_cap,
        )

    if current_price <= stats.lowest:
        score += weights.all_time_low_bonus
    elif current_price <= stats.lowest * weights.near_low_factor:
        score += weights.near_low_bonus

    if manipulation_detected:
        score -= weights.manipulation_penalty
    if not original_plausible:
        score -= weights.inflated_original_penalty

    if stats.recent_trend == "falling":
        score += weights.trend_adjustment
    elif stats.recent_trend == "rising":
        score -= weights.trend_adjustment

    score = max(0.0, min(100.0, score))

    is_real_deal = (
        score >= weights.real_deal_min_score
        and discount_from_average > weights.real_deal_min_discount
        and not manipulation_detected
        and original_plausible
    )

    return PriceAnalysis(
        is_real_deal=is_real_deal,
        deal_score=int(_round_half_up(score)),
        discount_from_average=_round_half_up(discount_from_average, 1),
        discount_from_lowest=_round_half_up(discount_from_lowest, 1),
        price_manipulation_detected=manipulation_detected,
        recommendation=recommend(score, manipulation_detected, weights),
        analysis=describe(
            stats,
            current_price,
            discount_from_average,
            manipulation_detected,
            original_plausible,
        ),
    )


class DealScorer:
    """Fetch price evidence for a product and score a claimed discount."""

    def __init__(
        self,
        store: DealStore,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self._store = store
        self._stats = PriceStatsEngine(store)
        self._detector = ManipulationDetector(store)
        self.weights = weights

    def analyze(
        self,
        product_id: int,
        current_price: float,
        claimed_original_price: float,
        now: datetime | None = None,
    ) -> PriceAnalysis:
        """Analyse a promotion price for an existing product.

        Raises :class:`~dealwatch.storage.deal_store.RecordNotFoundError`
        for an unknown product.
        """
        self._store.get_product(product_id)
        stats = self._stats.get_price_stats(product_id, now=now)
        if stats is None:
            return neutral_analysis()

        manipulated = self._detector.is_manipulated(product_id, now=now)
        result = score_deal(
            stats,
            manipulated,
            current_price,
            claimed_original_price,
            self.weights,
        )
        logger.debug(
            "Product %d at %.2f (claimed %.2f): score=%d real=%s",
            product_id,
            current_price,
            claimed_original_price,
            result.deal_score,
            result.is_real_deal,
        )
        return result
