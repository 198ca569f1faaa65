# dealwatch/analysis/price_recorder.py

"""Price observation recording and the cached-statistics writer."""

import logging
from datetime import datetime

from dealwatch.analysis.price_stats import window_prices
from dealwatch.config.settings import Settings
from dealwatch.models.price_point import PricePoint
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.analysis")


def recompute_cached_stats(
    store: DealStore,
    product_id: int,
    now: datetime | None = None,
) -> bool:
    """Rebuild lowest / highest / average on the product from history.

    This is the only writer of those cached columns.  The statistics
    window is used even below the minimum sample size, so a fresh
    product's cache equals its first price.  Returns ``False`` (and
    leaves the cache untouched) when the window holds no prices.
    """
    prices = window_prices(
        store, product_id, Settings.STATS_WINDOW_DAYS, now,
    )
    if not prices:
        return False
    store.write_cached_stats(
        product_id,
        lowest=min(prices),
        highest=max(prices),
        average=sum(prices) / len(prices),
    )
    return True


def record_price(
    store: DealStore,
    product_id: int,
    price: float,
    source: str,
    at: datetime | None = None,
    original_price: float | None = None,
) -> PricePoint:
    """Append a price observation and refresh the product it belongs to."""
    observed_at = at or datetime.now()
    point = store.append_price_point(
        product_id, price, source, recorded_at=observed_at,
    )
    store.update_product_observation(
        product_id,
        current_price=price,
        last_checked=observed_at,
        original_price=original_price,
    )
    recompute_cached_stats(store, product_id)
    logger.debug(
        "Recorded %.2f for product %d (source=%s)",
        price, product_id, source,
    )
    return point
