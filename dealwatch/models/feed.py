# dealwatch/models/feed.py

"""Canonical feed record and batch import result models."""

from dataclasses import dataclass


@dataclass
class FeedRecord:
    """One offer parsed out of a partner feed, in canonical form."""

    external_id: str | None
    name: str
    price: float
    url: str
    original_price: float | None = None
    description: str | None = None
    image: str | None = None
    category: str | None = None
    brand: str | None = None
    barcode: str | None = None
    sku: str | None = None


@dataclass
class ImportResult:
    """Outcome counts of one feed import batch."""

    imported: int = 0
    updated: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        """Number of entries seen in the batch."""
        return self.imported + self.updated + self.errors

    def summary(self) -> str:
        """Human-readable batch summary."""
        return (
            f"{self.imported} imported, {self.updated} updated, "
            f"{self.errors} errors"
        )
