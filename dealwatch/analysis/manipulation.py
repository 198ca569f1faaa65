# dealwatch/analysis/manipulation.py

"""Detection of inflate-then-discount ("fake markdown") price patterns."""

import logging
from collections.abc import Sequence
from datetime import datetime

from dealwatch.analysis.price_stats import window_prices
from dealwatch.config.settings import Settings
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.analysis")


def find_manipulation(
    prices: Sequence[float],
    min_points: int = Settings.MIN_MANIPULATION_POINTS,
    spike_percent: float = Settings.MANIPULATION_SPIKE_PERCENT,
    drop_percent: float = Settings.MANIPULATION_DROP_PERCENT,
    baseline_percent: float = Settings.MANIPULATION_BASELINE_PERCENT,
) -> int | None:
    """Return the index of the first price closing a fake-discount triple.

    A triple ``(before, spike, after)`` in chronological order matches
    when the spike is more than ``spike_percent`` above ``before``, the
    drop from the spike is more than ``drop_percent`` and ``after`` lands
    within ``baseline_percent`` of ``before``.  Returns ``None`` when the
    series is too short or no triple matches.
    """
    if len(prices) < min_points:
        return None

    for i in range(2, len(prices)):
        before, spike, after = prices[i - 2], prices[i - 1], prices[i]
        increase = (spike - before) / before * 100
        decrease = (spike - after) / spike * 100
        if increase > spike_percent and decrease > drop_percent:
            drift = abs(after - before) / before * 100
            if drift < baseline_percent:
                return i
    return None


def detect_manipulation(
    prices: Sequence[float],
    min_points: int = Settings.MIN_MANIPULATION_POINTS,
) -> bool:
    """True when the series contains an inflate-then-discount triple."""
    return find_manipulation(prices, min_points=min_points) is not None


class ManipulationDetector:
    """Scan a product's recent price window for fake markdowns."""

    def __init__(self, store: DealStore) -> None:
        self._store = store

    def is_manipulated(
        self,
        product_id: int,
        days: int = Settings.MANIPULATION_WINDOW_DAYS,
        now: datetime | None = None,
    ) -> bool:
        prices = window_prices(self._store, product_id, days, now)
        index = find_manipulation(prices)
        if index is None:
            return False
        logger.info(
            "Price manipulation on product %d: %.2f -> %.2f -> %.2f",
            product_id,
            prices[index - 2],
            prices[index - 1],
            prices[index],
        )
        return True
