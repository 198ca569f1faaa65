# dealwatch/storage/deal_store.py

"""SQLite-backed store for stores, products, price history and promotions."""

import json
import logging
import re
import sqlite3
import unicodedata
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from dealwatch.config.settings import Settings
from dealwatch.models.price_point import PricePoint
from dealwatch.models.product import Product
from dealwatch.models.promotion import Promotion, compute_discount_percent
from dealwatch.models.store import Category, Store

logger = logging.getLogger("dealwatch.storage")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS stores (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT    NOT NULL,
    slug           TEXT    NOT NULL UNIQUE,
    feed_url       TEXT    NOT NULL DEFAULT '',
    feed_type      TEXT    NOT NULL DEFAULT '',
    feed_mapping   TEXT    NOT NULL DEFAULT '{}',
    affiliate_id   TEXT    NOT NULL DEFAULT '',
    is_active      INTEGER NOT NULL DEFAULT 1,
    last_feed_sync TEXT
);

CREATE TABLE IF NOT EXISTS categories (
    id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT    NOT NULL,
    slug TEXT    NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS products (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    store_id       INTEGER NOT NULL REFERENCES stores(id),
    category_id    INTEGER REFERENCES categories(id),
    name           TEXT    NOT NULL,
    slug           TEXT    NOT NULL,
    description    TEXT    NOT NULL DEFAULT '',
    url            TEXT    NOT NULL DEFAULT '',
    image          TEXT    NOT NULL DEFAULT '',
    brand          TEXT,
    barcode        TEXT,
    external_id    TEXT,
    sku            TEXT,
    current_price  REAL    NOT NULL,
    original_price REAL,
    lowest_price   REAL,
    highest_price  REAL,
    average_price  REAL,
    is_active      INTEGER NOT NULL DEFAULT 1,
    last_checked   TEXT,
    created_at     TEXT    NOT NULL,
    updated_at     TEXT    NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_products_store_external
    ON products(store_id, external_id)
    WHERE external_id IS NOT NULL;

CREATE INDEX IF NOT EXISTS idx_products_barcode
    ON products(barcode);

CREATE TABLE IF NOT EXISTS price_points (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id  INTEGER NOT NULL REFERENCES products(id),
    price       REAL    NOT NULL CHECK (price > 0),
    recorded_at TEXT    NOT NULL,
    source      TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_price_points_product_date
    ON price_points(product_id, recorded_at);

CREATE TABLE IF NOT EXISTS promotions (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id       INTEGER NOT NULL REFERENCES products(id),
    title            TEXT    NOT NULL,
    description      TEXT    NOT NULL DEFAULT '',
    promotion_price  REAL    NOT NULL,
    original_price   REAL    NOT NULL,
    discount_percent REAL    NOT NULL,
    deal_score       INTEGER,
    is_real_deal     INTEGER NOT NULL DEFAULT 0,
    is_active        INTEGER NOT NULL DEFAULT 1,
    is_featured      INTEGER NOT NULL DEFAULT 0,
    starts_at        TEXT,
    ends_at          TEXT,
    created_at       TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_promotions_product
    ON promotions(product_id);
"""

# Columns a caller may change through update_promotion()
_PROMOTION_MUTABLE: frozenset[str] = frozenset({
    "title", "description", "promotion_price", "original_price",
    "deal_score", "is_real_deal", "is_active", "is_featured",
    "starts_at", "ends_at",
})


class DealStoreError(Exception):
    """Base class for persistence-level errors."""


class RecordNotFoundError(DealStoreError, LookupError):
    """No row exists for the requested identifier."""


class DuplicateProductError(DealStoreError):
    """A product with the same (store, external id) already exists."""


class ProductInUseError(DealStoreError):
    """A product still has promotions or price history attached."""


def slugify(text: str) -> str:
    """Lowercase ASCII slug: accents stripped, non-alphanumerics to '-'."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    ascii_only = "".join(
        c for c in decomposed if not unicodedata.combining(c)
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_only)
    return slug.strip("-")


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class DealStore:
    """SQLite-backed persistence handle.

    Construct one per process (or per test), pass it to the services
    that need it and :meth:`close` it at shutdown.  Every write commits
    immediately, so a failed batch never rolls back earlier entries.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("DealStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> "DealStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Row mapping ──────────────────────────────────────

    @staticmethod
    def _to_store(row: sqlite3.Row) -> Store:
        return Store(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            feed_url=row["feed_url"],
            feed_type=row["feed_type"],
            feed_mapping=json.loads(row["feed_mapping"] or "{}"),
            affiliate_id=row["affiliate_id"],
            is_active=bool(row["is_active"]),
            last_feed_sync=_dt(row["last_feed_sync"]),
        )

    @staticmethod
    def _to_product(row: sqlite3.Row) -> Product:
        return Product(
            id=row["id"],
            store_id=row["store_id"],
            name=row["name"],
            slug=row["slug"],
            current_price=row["current_price"],
            original_price=row["original_price"],
            lowest_price=row["lowest_price"],
            highest_price=row["highest_price"],
            average_price=row["average_price"],
            url=row["url"],
            image=row["image"],
            description=row["description"],
            brand=row["brand"],
            barcode=row["barcode"],
            external_id=row["external_id"],
            sku=row["sku"],
            category_id=row["category_id"],
            is_active=bool(row["is_active"]),
            last_checked=_dt(row["last_checked"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    @staticmethod
    def _to_price_point(row: sqlite3.Row) -> PricePoint:
        return PricePoint(
            id=row["id"],
            product_id=row["product_id"],
            price=row["price"],
            recorded_at=datetime.fromisoformat(row["recorded_at"]),
            source=row["source"],
        )

    @staticmethod
    def _to_promotion(row: sqlite3.Row) -> Promotion:
        return Promotion(
            id=row["id"],
            product_id=row["product_id"],
            title=row["title"],
            description=row["description"],
            promotion_price=row["promotion_price"],
            original_price=row["original_price"],
            discount_percent=row["discount_percent"],
            deal_score=row["deal_score"],
            is_real_deal=bool(row["is_real_deal"]),
            is_active=bool(row["is_active"]),
            is_featured=bool(row["is_featured"]),
            starts_at=_dt(row["starts_at"]),
            ends_at=_dt(row["ends_at"]),
            created_at=_dt(row["created_at"]),
        )

    # ── Stores & categories ──────────────────────────────

    def create_store(
        self,
        name: str,
        slug: str | None = None,
        feed_url: str = "",
        feed_type: str = "",
        feed_mapping: dict[str, str] | None = None,
        affiliate_id: str = "",
    ) -> Store:
        """Register a partner store."""
        cur = self._conn.execute(
            "INSERT INTO stores "
            "(name, slug, feed_url, feed_type, feed_mapping, affiliate_id) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                name,
                slug or slugify(name),
                feed_url,
                feed_type,
                json.dumps(feed_mapping or {}),
                affiliate_id,
            ),
        )
        self._conn.commit()
        store_id = cast(int, cur.lastrowid)
        logger.info("Created store %d (%s)", store_id, name)
        return self.get_store(store_id)

    def get_store(self, store_id: int) -> Store:
        """Return a store or raise :class:`RecordNotFoundError`."""
        row = self._conn.execute(
            "SELECT * FROM stores WHERE id = ?", (store_id,),
        ).fetchone()
        if row is None:
            raise RecordNotFoundError(f"store {store_id} not found")
        return self._to_store(row)

    def list_stores(self) -> list[Store]:
        rows = self._conn.execute(
            "SELECT * FROM stores ORDER BY name",
        ).fetchall()
        return [self._to_store(r) for r in rows]

    def update_store_feed(
        self,
        store_id: int,
        feed_url: str,
        feed_type: str,
        feed_mapping: dict[str, str],
        synced_at: datetime,
    ) -> None:
        """Persist the feed configuration used by the last import."""
        self._conn.execute(
            "UPDATE stores SET feed_url = ?, feed_type = ?, "
            "feed_mapping = ?, last_feed_sync = ? WHERE id = ?",
            (
                feed_url,
                feed_type,
                json.dumps(feed_mapping),
                _ts(synced_at),
                store_id,
            ),
        )
        self._conn.commit()

    def get_or_create_category(self, name: str) -> Category:
        """Look up a category by slug, creating it on first sight."""
        slug = slugify(name)
        row = self._conn.execute(
            "SELECT * FROM categories WHERE slug = ?", (slug,),
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO categories (name, slug) VALUES (?, ?) "
                "ON CONFLICT(slug) DO NOTHING",
                (name.strip(), slug),
            )
            self._conn.commit()
            row = self._conn.execute(
                "SELECT * FROM categories WHERE slug = ?", (slug,),
            ).fetchone()
        return Category(id=row["id"], name=row["name"], slug=row["slug"])

    # ── Products ─────────────────────────────────────────

    def create_product(
        self,
        store_id: int,
        name: str,
        current_price: float,
        original_price: float | None = None,
        url: str = "",
        image: str = "",
        description: str = "",
        brand: str | None = None,
        barcode: str | None = None,
        external_id: str | None = None,
        sku: str | None = None,
        category_id: int | None = None,
        created_at: datetime | None = None,
    ) -> Product:
        """Insert a product with an empty statistics cache.

        Raises :class:`DuplicateProductError` when ``external_id`` is
        already taken within the store.
        """
        now = created_at or datetime.now()
        suffix = external_id or now.strftime("%Y%m%d%H%M%S%f")
        slug = f"{slugify(name)[:100]}-{slugify(suffix)}"
        try:
            cur = self._conn.execute(
                "INSERT INTO products "
                "(store_id, category_id, name, slug, description, url, "
                " image, brand, barcode, external_id, sku, "
                " current_price, original_price, last_checked, "
                " created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    store_id, category_id, name, slug, description, url,
                    image, brand, barcode, external_id, sku,
                    current_price, original_price, _ts(now),
                    _ts(now), _ts(now),
                ),
            )
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            if "external_id" in str(exc):
                raise DuplicateProductError(
                    f"store {store_id} already has external id "
                    f"{external_id!r}"
                ) from exc
            raise
        self._conn.commit()
        product_id = cast(int, cur.lastrowid)
        return self.get_product(product_id)

    def get_product(self, product_id: int) -> Product:
        """Return a product or raise :class:`RecordNotFoundError`."""
        row = self._conn.execute(
            "SELECT * FROM products WHERE id = ?", (product_id,),
        ).fetchone()
        if row is None:
            raise RecordNotFoundError(
                f"product {product_id} not found"
            )
        return self._to_product(row)

    def find_product_by_external_id(
        self, store_id: int, external_id: str,
    ) -> Product | None:
        row = self._conn.execute(
            "SELECT * FROM products "
            "WHERE store_id = ? AND external_id = ?",
            (store_id, external_id),
        ).fetchone()
        return self._to_product(row) if row else None

    def find_product_by_barcode(
        self, store_id: int, barcode: str,
    ) -> Product | None:
        row = self._conn.execute(
            "SELECT * FROM products WHERE store_id = ? AND barcode = ? "
            "ORDER BY id LIMIT 1",
            (store_id, barcode),
        ).fetchone()
        return self._to_product(row) if row else None

    def list_active_products(
        self,
        barcode: str | None = None,
        with_barcode: bool = False,
        name_terms: list[str] | None = None,
        exclude_product_id: int | None = None,
        exclude_store_id: int | None = None,
        limit: int | None = None,
    ) -> list[Product]:
        """Query active products.

        ``name_terms`` keeps products whose name contains at least one
        term (case-insensitive substring).  Results are ordered by most
        recently updated first.
        """
        clauses = ["is_active = 1"]
        params: list[Any] = []
        if barcode is not None:
            clauses.append("barcode = ?")
            params.append(barcode)
        if with_barcode:
            clauses.append("barcode IS NOT NULL AND barcode != ''")
        if name_terms:
            clauses.append(
                "(" + " OR ".join(
                    "LOWER(name) LIKE ?" for _ in name_terms
                ) + ")"
            )
            params.extend(f"%{t.lower()}%" for t in name_terms)
        if exclude_product_id is not None:
            clauses.append("id != ?")
            params.append(exclude_product_id)
        if exclude_store_id is not None:
            clauses.append("store_id != ?")
            params.append(exclude_store_id)

        sql = (
            "SELECT * FROM products WHERE "
            + " AND ".join(clauses)
            + " ORDER BY updated_at DESC, id DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._to_product(r) for r in rows]

    def update_product_observation(
        self,
        product_id: int,
        current_price: float,
        last_checked: datetime,
        original_price: float | None = None,
    ) -> None:
        """Record the latest observed price on the product row.

        ``original_price`` is left unchanged when ``None``.
        """
        self._conn.execute(
            "UPDATE products SET current_price = ?, "
            "original_price = COALESCE(?, original_price), "
            "last_checked = ?, updated_at = ? WHERE id = ?",
            (
                current_price,
                original_price,
                _ts(last_checked),
                _ts(datetime.now()),
                product_id,
            ),
        )
        self._conn.commit()

    def write_cached_stats(
        self,
        product_id: int,
        lowest: float,
        highest: float,
        average: float,
    ) -> None:
        """Overwrite the statistics cache on a product row."""
        self._conn.execute(
            "UPDATE products SET lowest_price = ?, highest_price = ?, "
            "average_price = ? WHERE id = ?",
            (lowest, highest, average, product_id),
        )
        self._conn.commit()

    def delete_product(
        self, product_id: int, cascade: bool = False,
    ) -> None:
        """Delete a product.

        Price history and promotions are evidence: without ``cascade``
        the delete is refused while either exists.
        """
        self.get_product(product_id)
        points = self.count_price_points(product_id)
        promos = self._conn.execute(
            "SELECT COUNT(id) FROM promotions WHERE product_id = ?",
            (product_id,),
        ).fetchone()[0]
        if (points or promos) and not cascade:
            raise ProductInUseError(
                f"product {product_id} has {points} price points and "
                f"{promos} promotions"
            )
        with self._conn:
            self._conn.execute(
                "DELETE FROM promotions WHERE product_id = ?",
                (product_id,),
            )
            self._conn.execute(
                "DELETE FROM price_points WHERE product_id = ?",
                (product_id,),
            )
            self._conn.execute(
                "DELETE FROM products WHERE id = ?", (product_id,),
            )
        logger.info(
            "Deleted product %d (%d points, %d promotions)",
            product_id, points, promos,
        )

    # ── Price history ────────────────────────────────────

    def append_price_point(
        self,
        product_id: int,
        price: float,
        source: str,
        recorded_at: datetime | None = None,
    ) -> PricePoint:
        """Append an immutable price observation."""
        if not price > 0:
            raise ValueError(f"price must be positive, got {price}")
        at = recorded_at or datetime.now()
        cur = self._conn.execute(
            "INSERT INTO price_points "
            "(product_id, price, recorded_at, source) "
            "VALUES (?, ?, ?, ?)",
            (product_id, price, _ts(at), source),
        )
        self._conn.commit()
        point_id = cast(int, cur.lastrowid)
        return PricePoint(
            id=point_id,
            product_id=product_id,
            price=price,
            recorded_at=datetime.fromisoformat(_ts(at) or ""),
            source=source,
        )

    def get_price_points(
        self,
        product_id: int,
        since: datetime | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[PricePoint]:
        """Return price history, oldest first unless ``newest_first``."""
        direction = "DESC" if newest_first else "ASC"
        sql = "SELECT * FROM price_points WHERE product_id = ?"
        params: list[Any] = [product_id]
        if since is not None:
            sql += " AND recorded_at >= ?"
            params.append(_ts(since))
        sql += f" ORDER BY recorded_at {direction}, id {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._to_price_point(r) for r in rows]

    def count_price_points(self, product_id: int) -> int:
        row = self._conn.execute(
            "SELECT COUNT(id) FROM price_points WHERE product_id = ?",
            (product_id,),
        ).fetchone()
        return int(row[0])

    # ── Promotions ───────────────────────────────────────

    def create_promotion(
        self,
        product_id: int,
        title: str,
        promotion_price: float,
        original_price: float,
        description: str = "",
        deal_score: int | None = None,
        is_real_deal: bool = False,
        is_featured: bool = False,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> Promotion:
        """Insert a promotion; the discount is derived from its prices."""
        discount = compute_discount_percent(
            original_price, promotion_price,
        )
        cur = self._conn.execute(
            "INSERT INTO promotions "
            "(product_id, title, description, promotion_price, "
            " original_price, discount_percent, deal_score, "
            " is_real_deal, is_featured, starts_at, ends_at, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                product_id, title, description, promotion_price,
                original_price, discount, deal_score,
                int(is_real_deal), int(is_featured),
                _ts(starts_at), _ts(ends_at), _ts(datetime.now()),
            ),
        )
        self._conn.commit()
        promotion_id = cast(int, cur.lastrowid)
        return self.get_promotion(promotion_id)

    def get_promotion(self, promotion_id: int) -> Promotion:
        """Return a promotion or raise :class:`RecordNotFoundError`."""
        row = self._conn.execute(
            "SELECT * FROM promotions WHERE id = ?", (promotion_id,),
        ).fetchone()
        if row is None:
            raise RecordNotFoundError(
                f"promotion {promotion_id} not found"
            )
        return self._to_promotion(row)

    def list_promotions(
        self,
        product_id: int | None = None,
        active_only: bool = False,
    ) -> list[Promotion]:
        """List promotions, best deal score first."""
        clauses: list[str] = []
        params: list[Any] = []
        if product_id is not None:
            clauses.append("product_id = ?")
            params.append(product_id)
        if active_only:
            clauses.append("is_active = 1")
        sql = "SELECT * FROM promotions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY deal_score IS NULL, deal_score DESC, id"
        rows = self._conn.execute(sql, params).fetchall()
        return [self._to_promotion(r) for r in rows]

    def update_promotion(
        self, promotion_id: int, **changes: Any,
    ) -> Promotion:
        """Apply column changes to a promotion.

        The discount percentage is recomputed from the resulting prices
        on every update, never accepted from the caller.
        """
        unknown = set(changes) - _PROMOTION_MUTABLE
        if unknown:
            raise ValueError(
                f"cannot update promotion field(s): {sorted(unknown)}"
            )
        current = self.get_promotion(promotion_id)
        promotion_price = changes.get(
            "promotion_price", current.promotion_price,
        )
        original_price = changes.get(
            "original_price", current.original_price,
        )

        values: dict[str, Any] = {}
        for key, value in changes.items():
            if isinstance(value, datetime):
                value = _ts(value)
            elif isinstance(value, bool):
                value = int(value)
            values[key] = value
        values["discount_percent"] = compute_discount_percent(
            original_price, promotion_price,
        )

        assignments = ", ".join(f"{k} = ?" for k in values)
        self._conn.execute(
            f"UPDATE promotions SET {assignments} WHERE id = ?",
            (*values.values(), promotion_id),
        )
        self._conn.commit()
        return self.get_promotion(promotion_id)

    def deactivate_promotion(self, promotion_id: int) -> None:
        """Retire a promotion without deleting it."""
        self.update_promotion(promotion_id, is_active=False)
