# dealwatch/models/store.py

"""Partner store and product category models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Store:
    """A partner store whose feed is imported into the catalogue."""

    id: int
    name: str
    slug: str
    feed_url: str = ""
    feed_type: str = ""
    feed_mapping: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    affiliate_id: str = ""
    is_active: bool = True
    last_feed_sync: datetime | None = None


@dataclass
class Category:
    """A product category, created on demand from feed category names."""

    id: int
    name: str
    slug: str
