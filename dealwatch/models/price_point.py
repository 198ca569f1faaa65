# dealwatch/models/price_point.py

"""Immutable price observation model for price history tracking."""

from dataclasses import dataclass
from datetime import datetime

# Known origins of a price observation
SOURCE_MANUAL = "manual"
SOURCE_FEED = "feed"


@dataclass(frozen=True)
class PricePoint:
    """A single price observation for a product at a point in time."""

    id: int
    product_id: int
    price: float
    recorded_at: datetime
    source: str
