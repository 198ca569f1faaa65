# dealwatch/models/product.py

"""Canonical store-scoped product model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Product:
    """A sellable item at one store.

    ``lowest_price``, ``highest_price`` and ``average_price`` are a cache
    of the price history and are only written by
    :func:`dealwatch.analysis.price_recorder.recompute_cached_stats`.
    """

    id: int
    store_id: int
    name: str
    slug: str
    current_price: float
    original_price: float | None = None
    lowest_price: float | None = None
    highest_price: float | None = None
    average_price: float | None = None
    url: str = ""
    image: str = ""
    description: str = ""
    brand: str | None = None
    barcode: str | None = None
    external_id: str | None = None
    sku: str | None = None
    category_id: int | None = None
    is_active: bool = True
    last_checked: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
