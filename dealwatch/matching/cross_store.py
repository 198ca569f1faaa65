# dealwatch/matching/cross_store.py

"""Group the same physical item across stores for price comparison."""

import logging
import re

from dealwatch.config.settings import Settings
from dealwatch.models.comparison import Offer, ProductGroup
from dealwatch.models.product import Product
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.matching")

_NON_WORD_RE = re.compile(r"[^\w\s]")


def normalise_name(name: str) -> str:
    """Lowercase, turn punctuation into spaces and collapse whitespace."""
    return " ".join(_NON_WORD_RE.sub(" ", name.lower()).split())


def tokenize(
    name: str, min_length: int = Settings.MIN_TOKEN_LENGTH,
) -> list[str]:
    """Significant words of a product name, first occurrence order."""
    words = [w for w in normalise_name(name).split() if len(w) > min_length]
    return list(dict.fromkeys(words))


def name_similarity(query_tokens: list[str], candidate_name: str) -> float:
    """Percentage of query tokens that also appear in the candidate."""
    if not query_tokens:
        return 0.0
    candidate = set(tokenize(candidate_name))
    shared = sum(1 for t in query_tokens if t in candidate)
    return float(round(shared / len(query_tokens) * 100))


def is_similar(
    similarity: float,
    threshold: float = Settings.SIMILARITY_THRESHOLD,
) -> bool:
    """Inclusion test for fuzzy matches (the threshold itself counts)."""
    return similarity >= threshold


class CrossStoreMatcher:
    """Build cross-store comparison groups from the product catalogue."""

    def __init__(self, store: DealStore) -> None:
        self._store = store

    def _store_names(self) -> dict[int, str]:
        return {s.id: s.name for s in self._store.list_stores()}

    @staticmethod
    def _offer(
        product: Product, store_names: dict[int, str],
        similarity: float = 100.0,
    ) -> Offer:
        return Offer(
            product_id=product.id,
            store_id=product.store_id,
            store_name=store_names.get(product.store_id, "Store"),
            name=product.name,
            price=product.current_price,
            url=product.url,
            original_price=product.original_price,
            barcode=product.barcode,
            similarity=similarity,
        )

    @staticmethod
    def _sort_offers(group: ProductGroup) -> ProductGroup:
        group.offers.sort(key=lambda o: o.price)
        return group

    # ── Lookup modes ─────────────────────────────────────

    def match_barcode(self, barcode: str) -> list[ProductGroup]:
        """Exact mode: every active product carrying ``barcode``."""
        products = self._store.list_active_products(barcode=barcode)
        if not products:
            return []
        names = self._store_names()
        group = ProductGroup(
            key=barcode,
            name=products[0].name,
            barcode=barcode,
            offers=[self._offer(p, names) for p in products],
        )
        return [self._sort_offers(group)]

    def match_name(self, name: str) -> list[ProductGroup]:
        """Fuzzy mode: recall-favouring match on significant name tokens."""
        tokens = tokenize(name)
        if not tokens:
            logger.debug("No significant tokens in %r", name)
            return []

        candidates = self._store.list_active_products(
            name_terms=tokens, limit=Settings.NAME_SEARCH_LIMIT,
        )
        names = self._store_names()
        groups: dict[str, ProductGroup] = {}
        for product in candidates:
            similarity = name_similarity(tokens, product.name)
            if not is_similar(similarity):
                continue
            key = product.barcode or normalise_name(product.name)
            group = groups.get(key)
            if group is None:
                group = ProductGroup(
                    key=key,
                    name=product.name,
                    barcode=product.barcode,
                    similarity=similarity,
                )
                groups[key] = group
            group.offers.append(self._offer(product, names, similarity))
            group.similarity = max(group.similarity, similarity)

        result = [self._sort_offers(g) for g in groups.values()]
        result.sort(key=lambda g: (-g.similarity, g.lowest_price))
        logger.debug(
            "Name match %r: %d candidates, %d groups",
            name, len(candidates), len(result),
        )
        return result

    def find_matches(
        self,
        barcode: str | None = None,
        name: str | None = None,
        limit: int = Settings.BEST_DEALS_LIMIT,
    ) -> list[ProductGroup]:
        """Barcode wins over name; with neither, return the best deals."""
        if barcode:
            return self.match_barcode(barcode)
        if name:
            return self.match_name(name)
        return self.get_best_deals(limit)

    def get_best_deals(
        self, limit: int = Settings.BEST_DEALS_LIMIT,
    ) -> list[ProductGroup]:
        """Barcode groups sold by two or more stores, biggest savings first."""
        products = self._store.list_active_products(
            with_barcode=True, limit=Settings.BEST_DEALS_SCAN_LIMIT,
        )
        names = self._store_names()
        groups: dict[str, ProductGroup] = {}
        for product in products:
            barcode = product.barcode or ""
            group = groups.setdefault(
                barcode,
                ProductGroup(key=barcode, name=product.name, barcode=barcode),
            )
            group.offers.append(self._offer(product, names))

        comparable = [
            self._sort_offers(g) for g in groups.values()
            if g.store_count >= 2
        ]
        comparable.sort(key=lambda g: g.savings, reverse=True)
        return comparable[:limit]

    def find_similar(self, product_id: int) -> list[tuple[Product, float]]:
        """Products resembling ``product_id``, most similar first.

        Same-barcode products score 100; other stores' products are
        added when their name similarity clears the threshold.
        """
        product = self._store.get_product(product_id)
        similar: list[tuple[Product, float]] = []
        seen: set[int] = set()

        if product.barcode:
            for other in self._store.list_active_products(
                barcode=product.barcode, exclude_product_id=product_id,
            ):
                similar.append((other, 100.0))
                seen.add(other.id)

        tokens = tokenize(product.name)
        if tokens:
            for other in self._store.list_active_products(
                name_terms=tokens,
                exclude_product_id=product_id,
                exclude_store_id=product.store_id,
                limit=Settings.NAME_SEARCH_LIMIT,
            ):
                if other.id in seen:
                    continue
                similarity = name_similarity(tokens, other.name)
                if is_similar(similarity):
                    similar.append((other, similarity))

        similar.sort(key=lambda pair: pair[1], reverse=True)
        return similar
