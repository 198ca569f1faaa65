# dealwatch/feeds/importer.py

"""Import partner feeds into the catalogue and its price history.

Reconciliation contract: the (store, external id) pair is unique at the
persistence layer.  When two imports of the same store race to create
the same product, the loser gets a ``DuplicateProductError`` and replays
the entry as an update, so concurrent batches never create duplicates.
Batches are not atomic: every entry is committed as it is processed, in
input order.
"""

import logging
from collections.abc import Mapping
from datetime import datetime

from dealwatch.analysis.price_recorder import record_price
from dealwatch.feeds.fetcher import FeedFetcher
from dealwatch.feeds.field_mappings import mapping_for
from dealwatch.feeds.parsers import FEED_FORMATS, FeedParseError, parse_feed
from dealwatch.models.feed import FeedRecord, ImportResult
from dealwatch.models.price_point import SOURCE_FEED
from dealwatch.models.product import Product
from dealwatch.storage.deal_store import DealStore, DuplicateProductError

logger = logging.getLogger("dealwatch.feeds")


class FeedImporter:
    """Normalise feed payloads and reconcile them against inventory."""

    def __init__(self, store: DealStore) -> None:
        self._store = store

    # ── Reconciliation ───────────────────────────────────

    def find_existing(
        self, store_id: int, record: FeedRecord,
    ) -> Product | None:
        """Match by external id, or by barcode when there is none."""
        if record.external_id:
            return self._store.find_product_by_external_id(
                store_id, record.external_id,
            )
        if record.barcode:
            return self._store.find_product_by_barcode(
                store_id, record.barcode,
            )
        return None

    def _update(
        self, product: Product, record: FeedRecord, at: datetime,
    ) -> None:
        logger.debug(
            "Updating product %d (%s) at %.2f",
            product.id, record.name, record.price,
        )
        record_price(
            self._store,
            product.id,
            record.price,
            SOURCE_FEED,
            at=at,
            original_price=record.original_price,
        )

    def _create(
        self, store_id: int, record: FeedRecord, at: datetime,
    ) -> Product:
        category_id = None
        if record.category:
            category_id = self._store.get_or_create_category(
                record.category,
            ).id
        product = self._store.create_product(
            store_id=store_id,
            name=record.name,
            current_price=record.price,
            original_price=record.original_price or record.price,
            url=record.url,
            image=record.image or "",
            description=record.description or "",
            brand=record.brand,
            barcode=record.barcode,
            external_id=record.external_id,
            sku=record.sku,
            category_id=category_id,
            created_at=at,
        )
        logger.debug(
            "Created product %d (%s) at %.2f",
            product.id, record.name, record.price,
        )
        record_price(
            self._store, product.id, record.price, SOURCE_FEED, at=at,
        )
        return product

    def reconcile(
        self,
        store_id: int,
        record: FeedRecord,
        at: datetime | None = None,
    ) -> bool:
        """Upsert one record.  Returns True if a product was created."""
        observed_at = at or datetime.now()
        existing = self.find_existing(store_id, record)
        if existing is not None:
            self._update(existing, record, observed_at)
            return False
        try:
            self._create(store_id, record, observed_at)
        except DuplicateProductError:
            # Lost a create race with a concurrent import
            existing = self.find_existing(store_id, record)
            if existing is None:
                raise
            logger.info(
                "Concurrent create of %r in store %d, applying as update",
                record.external_id,
                store_id,
            )
            self._update(existing, record, observed_at)
            return False
        return True

    # ── Batch entry points ───────────────────────────────

    def import_feed(
        self,
        content: str | bytes,
        feed_type: str,
        store_id: int,
        mapping: Mapping[str, str] | None = None,
        at: datetime | None = None,
    ) -> ImportResult:
        """Import a raw payload of ``feed_type`` for ``store_id``.

        Raises :class:`~dealwatch.feeds.parsers.FeedParseError` when the
        payload as a whole is unreadable.
        """
        self._store.get_store(store_id)
        feed_format = FEED_FORMATS.get(feed_type)
        if feed_format is None:
            raise FeedParseError(f"unsupported feed type: {feed_type!r}")
        try:
            fields = mapping_for(feed_type, mapping)
        except ValueError as exc:
            raise FeedParseError(str(exc)) from exc

        records, errors = parse_feed(content, feed_format, fields)
        result = ImportResult(errors=errors)
        for record in records:
            if self.reconcile(store_id, record, at=at):
                result.imported += 1
            else:
                result.updated += 1

        logger.info(
            "Feed import for store %d (%s): %s",
            store_id,
            feed_type,
            result.summary(),
        )
        return result

    def import_from_store(
        self,
        store_id: int,
        fetcher: FeedFetcher,
        feed_url: str | None = None,
        feed_type: str | None = None,
        mapping: Mapping[str, str] | None = None,
    ) -> ImportResult:
        """Fetch and import a store's feed, then remember the sync.

        Explicit arguments override the store's saved feed settings and
        are saved back once the import succeeds.
        """
        store = self._store.get_store(store_id)
        url = feed_url or store.feed_url
        kind = feed_type or store.feed_type
        custom = dict(mapping) if mapping else dict(store.feed_mapping)

        fetch_url = url
        if kind == "lomadee" and store.affiliate_id:
            separator = "&" if "?" in url else "?"
            fetch_url = f"{url}{separator}sourceId={store.affiliate_id}"

        content = fetcher.fetch(fetch_url)
        result = self.import_feed(content, kind, store_id, custom)
        self._store.update_store_feed(
            store_id,
            feed_url=url,
            feed_type=kind,
            feed_mapping=custom,
            synced_at=datetime.now(),
        )
        return result
