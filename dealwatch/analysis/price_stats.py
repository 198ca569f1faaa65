# dealwatch/analysis/price_stats.py

"""Descriptive statistics over a product's price history window."""

import logging
import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from dealwatch.config.settings import Settings
from dealwatch.models.analysis import PriceStats, Trend
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.analysis")


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def classify_trend(
    prices: Sequence[float],
    average: float,
    recent_points: int = Settings.TREND_RECENT_POINTS,
    deadband: float = Settings.TREND_DEADBAND,
) -> Trend:
    """Compare the newest sub-window average to the full-window average.

    ``prices`` must be in chronological order.
    """
    recent_avg = _mean(prices[-recent_points:])
    margin = average * deadband
    if recent_avg > average + margin:
        return "rising"
    if recent_avg < average - margin:
        return "falling"
    return "stable"


def compute_price_stats(
    prices: Sequence[float],
    min_points: int = Settings.MIN_STATS_POINTS,
) -> PriceStats | None:
    """Summarise a chronological price series.

    Returns ``None`` when there are fewer than ``min_points`` prices;
    that is the insufficient-data signal, not an error.
    """
    if len(prices) < min_points:
        return None

    average = _mean(prices)
    variance = sum((p - average) ** 2 for p in prices) / len(prices)
    return PriceStats(
        average=average,
        lowest=min(prices),
        highest=max(prices),
        median=_median(prices),
        standard_deviation=math.sqrt(variance),
        recent_trend=classify_trend(prices, average),
        sample_size=len(prices),
    )


def window_start(days: int, now: datetime | None = None) -> datetime:
    """First instant of a lookback window of ``days`` calendar days."""
    return (now or datetime.now()) - timedelta(days=days)


def window_prices(
    store: DealStore,
    product_id: int,
    days: int,
    now: datetime | None = None,
) -> list[float]:
    """Chronological prices observed within the last ``days`` days."""
    points = store.get_price_points(
        product_id, since=window_start(days, now),
    )
    return [p.price for p in points]


class PriceStatsEngine:
    """Read a product's price window from the store and summarise it."""

    def __init__(self, store: DealStore) -> None:
        self._store = store

    def get_price_stats(
        self,
        product_id: int,
        days: int = Settings.STATS_WINDOW_DAYS,
        now: datetime | None = None,
    ) -> PriceStats | None:
        """Return statistics or ``None`` for insufficient data."""
        prices = window_prices(self._store, product_id, days, now)
        stats = compute_price_stats(prices)
        if stats is None:
            logger.debug(
                "Insufficient price history for product %d "
                "(%d points in %d days)",
                product_id,
                len(prices),
                days,
            )
        return stats
