# dealwatch/services/deal_service.py

"""Public entry points of the deal-verification engine."""

import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dealwatch.analysis.deal_scorer import (
    DEFAULT_WEIGHTS,
    DealScorer,
    ScoringWeights,
)
from dealwatch.analysis.price_recorder import record_price
from dealwatch.analysis.price_stats import PriceStatsEngine
from dealwatch.config.settings import Settings
from dealwatch.feeds.importer import FeedImporter
from dealwatch.matching.cross_store import CrossStoreMatcher
from dealwatch.models.analysis import PriceAnalysis, PriceStats
from dealwatch.models.comparison import ProductGroup
from dealwatch.models.feed import ImportResult
from dealwatch.models.price_point import SOURCE_MANUAL
from dealwatch.models.product import Product
from dealwatch.models.promotion import Promotion, compute_discount_percent
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.service")


class UnauthorizedCheckError(PermissionError):
    """The scheduled check was called without the configured secret."""


@dataclass
class CheckSummary:
    """Outcome of one scheduled check run."""

    products_checked: int
    promotions_rescored: int
    promotions_expired: int
    timestamp: datetime


class DealService:
    """Facade over analysis, feed import and cross-store matching.

    The persistence handle is injected; the service owns no global
    state and can be rebuilt per request.
    """

    def __init__(
        self,
        store: DealStore,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.store = store
        self._stats = PriceStatsEngine(store)
        self._scorer = DealScorer(store, weights)
        self._importer = FeedImporter(store)
        self._matcher = CrossStoreMatcher(store)

    # ── Core contract ────────────────────────────────────

    def analyze_deal(
        self,
        product_id: int,
        promo_price: float,
        original_price: float,
    ) -> PriceAnalysis:
        return self._scorer.analyze(product_id, promo_price, original_price)

    def import_feed(
        self,
        feed_bytes: str | bytes,
        feed_format: str,
        store_id: int,
        mapping: Mapping[str, str] | None = None,
    ) -> ImportResult:
        return self._importer.import_feed(
            feed_bytes, feed_format, store_id, mapping,
        )

    def get_price_stats(
        self,
        product_id: int,
        days: int = Settings.STATS_WINDOW_DAYS,
    ) -> PriceStats | None:
        self.store.get_product(product_id)
        return self._stats.get_price_stats(product_id, days)

    def find_matches(
        self,
        barcode: str | None = None,
        name: str | None = None,
    ) -> list[ProductGroup]:
        return self._matcher.find_matches(barcode=barcode, name=name)

    def find_similar(self, product_id: int) -> list[tuple[Product, float]]:
        return self._matcher.find_similar(product_id)

    def get_best_deals(
        self, limit: int = Settings.BEST_DEALS_LIMIT,
    ) -> list[ProductGroup]:
        return self._matcher.get_best_deals(limit)

    # ── Catalogue administration ─────────────────────────

    def create_product(
        self,
        store_id: int,
        name: str,
        current_price: float,
        original_price: float | None = None,
        **details: Any,
    ) -> Product:
        """Manually add a product and record its first price."""
        self.store.get_store(store_id)
        if not current_price > 0:
            raise ValueError(
                f"current price must be positive, got {current_price}"
            )
        product = self.store.create_product(
            store_id=store_id,
            name=name,
            current_price=current_price,
            original_price=original_price,
            **details,
        )
        record_price(self.store, product.id, current_price, SOURCE_MANUAL)
        return self.store.get_product(product.id)

    def record_price(
        self,
        product_id: int,
        price: float,
        source: str = SOURCE_MANUAL,
        at: datetime | None = None,
    ) -> Product:
        """Log a new price observation for an existing product."""
        self.store.get_product(product_id)
        record_price(self.store, product_id, price, source, at=at)
        return self.store.get_product(product_id)

    # ── Promotions ───────────────────────────────────────

    def create_promotion(
        self,
        product_id: int,
        promotion_price: float,
        original_price: float,
        title: str | None = None,
        description: str = "",
        is_featured: bool = False,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> tuple[Promotion, PriceAnalysis]:
        """Declare a discount, analyse it and persist score and verdict."""
        product = self.store.get_product(product_id)
        if not promotion_price > 0:
            raise ValueError(
                f"promotion price must be positive, got {promotion_price}"
            )
        discount = compute_discount_percent(original_price, promotion_price)
        analysis = self.analyze_deal(
            product_id, promotion_price, original_price,
        )
        promotion = self.store.create_promotion(
            product_id=product_id,
            title=title or f"{round(discount)}% OFF - {product.name}",
            promotion_price=promotion_price,
            original_price=original_price,
            description=description,
            deal_score=analysis.deal_score,
            is_real_deal=analysis.is_real_deal,
            is_featured=is_featured,
            starts_at=starts_at,
            ends_at=ends_at,
        )
        logger.info(
            "Promotion %d for product %d: %.1f%% off, score %d (%s)",
            promotion.id,
            product_id,
            discount,
            analysis.deal_score,
            analysis.recommendation,
        )
        return promotion, analysis

    def update_promotion(
        self, promotion_id: int, **changes: Any,
    ) -> Promotion:
        """Edit a promotion, re-analysing it when a price changes."""
        current = self.store.get_promotion(promotion_id)
        if "promotion_price" in changes or "original_price" in changes:
            promotion_price = changes.get(
                "promotion_price", current.promotion_price,
            )
            if not promotion_price > 0:
                raise ValueError(
                    "promotion price must be positive, "
                    f"got {promotion_price}"
                )
            analysis = self.analyze_deal(
                current.product_id,
                promotion_price,
                changes.get("original_price", current.original_price),
            )
            changes["deal_score"] = analysis.deal_score
            changes["is_real_deal"] = analysis.is_real_deal
        return self.store.update_promotion(promotion_id, **changes)

    def reanalyze_promotion(
        self, promotion_id: int,
    ) -> tuple[Promotion, PriceAnalysis]:
        """Re-score a promotion against the latest price history."""
        promotion = self.store.get_promotion(promotion_id)
        analysis = self.analyze_deal(
            promotion.product_id,
            promotion.promotion_price,
            promotion.original_price,
        )
        updated = self.store.update_promotion(
            promotion_id,
            deal_score=analysis.deal_score,
            is_real_deal=analysis.is_real_deal,
        )
        return updated, analysis

    # ── Scheduled check ──────────────────────────────────

    def run_scheduled_check(
        self,
        now: datetime | None = None,
        secret: str | None = None,
    ) -> CheckSummary:
        """Expire ended promotions and re-score the active ones.

        When ``Settings.CRON_SECRET`` is set, ``secret`` must match it.
        Prices are not re-fetched here.
        """
        expected = Settings.CRON_SECRET
        if expected and not hmac.compare_digest(secret or "", expected):
            raise UnauthorizedCheckError("invalid scheduled-check secret")

        at = now or datetime.now()
        products = self.store.list_active_products()
        expired = 0
        rescored = 0
        for promotion in self.store.list_promotions(active_only=True):
            if promotion.is_expired(at):
                self.store.deactivate_promotion(promotion.id)
                expired += 1
                continue
            self.reanalyze_promotion(promotion.id)
            rescored += 1

        logger.info(
            "Scheduled check: %d products, %d promotions rescored, "
            "%d expired",
            len(products),
            rescored,
            expired,
        )
        return CheckSummary(
            products_checked=len(products),
            promotions_rescored=rescored,
            promotions_expired=expired,
            timestamp=at,
        )
