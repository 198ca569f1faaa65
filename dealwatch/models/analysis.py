# dealwatch/models/analysis.py

"""Price statistics and deal analysis result models."""

from dataclasses import dataclass
from typing import Literal

Trend = Literal["rising", "falling", "stable"]
Recommendation = Literal[
    "excellent", "good", "average", "suspicious", "avoid",
]


@dataclass(frozen=True)
class PriceStats:
    """Statistical summary of a product's in-window price history."""

    average: float
    lowest: float
    highest: float
    median: float
    standard_deviation: float
    recent_trend: Trend
    sample_size: int


@dataclass(frozen=True)
class PriceAnalysis:
    """Verdict on whether a claimed discount is a genuine deal."""

    is_real_deal: bool
    deal_score: int
    discount_from_average: float
    discount_from_lowest: float
    price_manipulation_detected: bool
    recommendation: Recommendation
    analysis: str
