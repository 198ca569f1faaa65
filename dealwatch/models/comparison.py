# dealwatch/models/comparison.py

"""Cross-store comparison models (computed on read, never persisted)."""

from dataclasses import dataclass, field


@dataclass
class Offer:
    """One store's offer for a product inside a comparison group."""

    product_id: int
    store_id: int
    store_name: str
    name: str
    price: float
    url: str = ""
    original_price: float | None = None
    barcode: str | None = None
    similarity: float = 100.0

    @property
    def discount(self) -> int | None:
        """Markdown against the store's own original price, if any."""
        if not self.original_price:
            return None
        return round((1 - self.price / self.original_price) * 100)


@dataclass
class ProductGroup:
    """Products from one or more stores judged to be the same item.

    Offers are kept sorted cheapest first.
    """

    key: str
    name: str
    barcode: str | None = None
    offers: list[Offer] = field(
        default_factory=lambda: list[Offer]()
    )
    similarity: float = 100.0

    @property
    def lowest_price(self) -> float:
        return self.offers[0].price if self.offers else 0.0

    @property
    def highest_price(self) -> float:
        return self.offers[-1].price if self.offers else 0.0

    @property
    def savings(self) -> float:
        """Spread between the most and least expensive offer."""
        return self.highest_price - self.lowest_price

    @property
    def best_offer(self) -> Offer | None:
        return self.offers[0] if self.offers else None

    @property
    def store_count(self) -> int:
        return len({o.store_id for o in self.offers})
