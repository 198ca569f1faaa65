# dealwatch/models/promotion.py

"""Claimed discount (promotion) model."""

from dataclasses import dataclass
from datetime import datetime


def compute_discount_percent(
    original_price: float, promotion_price: float,
) -> float:
    """Return the claimed markdown as a percentage of the original price."""
    if original_price <= 0:
        raise ValueError(
            f"original price must be positive, got {original_price}"
        )
    return (original_price - promotion_price) / original_price * 100


@dataclass
class Promotion:
    """A claimed discount event bound to one product.

    ``discount_percent`` is derived from the two prices and is
    recomputed by the store whenever either price changes.  ``deal_score``
    stays ``None`` until the promotion has been analysed.
    """

    id: int
    product_id: int
    title: str
    promotion_price: float
    original_price: float
    discount_percent: float
    deal_score: int | None = None
    is_real_deal: bool = False
    is_active: bool = True
    is_featured: bool = False
    description: str = ""
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """True once the validity window has ended."""
        return self.ends_at is not None and self.ends_at < now
