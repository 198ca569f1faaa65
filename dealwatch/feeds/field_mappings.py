# dealwatch/feeds/field_mappings.py

"""Per-provider field mapping tables for partner feeds.

Each table maps a canonical :class:`~dealwatch.models.feed.FeedRecord`
field to the source keys a provider may use for it.  The first key with
a non-blank value wins.  Dotted keys (``category.name``) descend into
nested JSON objects.
"""

from collections.abc import Mapping
from typing import Any

FieldMapping = dict[str, list[str]]

CANONICAL_FIELDS: tuple[str, ...] = (
    "external_id", "name", "description", "price", "original_price",
    "image", "url", "category", "brand", "barcode", "sku",
)

LOMADEE_FIELDS: FieldMapping = {
    "external_id": ["id", "sku"],
    "name": ["name", "productName"],
    "description": ["description"],
    "price": ["price", "salePrice"],
    "original_price": ["oldPrice", "listPrice", "price"],
    "image": ["image", "thumbnail"],
    "url": ["link", "url"],
    "category": ["category.name", "categoryName"],
    "brand": ["brand"],
    "barcode": ["ean", "barcode"],
    "sku": ["sku"],
}

AWIN_FIELDS: FieldMapping = {
    "external_id": ["aw_product_id", "merchant_product_id"],
    "name": ["product_name"],
    "description": ["description"],
    "price": ["search_price"],
    "original_price": ["rrp_price"],
    "image": ["aw_image_url", "merchant_image_url"],
    "url": ["aw_deep_link", "merchant_deep_link"],
    "category": ["merchant_category"],
    "brand": ["brand_name"],
    "barcode": ["ean"],
    "sku": ["merchant_product_id"],
}

CSV_FIELDS: FieldMapping = {
    "external_id": ["id", "sku"],
    "name": ["name"],
    "description": ["description"],
    "price": ["price"],
    "original_price": ["original_price", "price"],
    "image": ["image"],
    "url": ["url"],
    "category": ["category"],
    "brand": ["brand"],
    "barcode": ["ean"],
    "sku": ["sku"],
}

GENERIC_JSON_FIELDS: FieldMapping = {
    "external_id": ["id", "externalId", "external_id", "sku"],
    "name": ["name", "title", "productName"],
    "description": ["description"],
    "price": ["price", "salePrice", "sale_price"],
    "original_price": [
        "originalPrice", "original_price", "oldPrice", "listPrice",
        "price",
    ],
    "image": ["image", "imageUrl", "image_url", "thumbnail"],
    "url": ["url", "link"],
    "category": ["category.name", "category", "categoryName"],
    "brand": ["brand.name", "brand"],
    "barcode": ["ean", "barcode", "gtin"],
    "sku": ["sku"],
}

GENERIC_XML_FIELDS: FieldMapping = {
    "external_id": ["id", "sku", "aw_product_id"],
    "name": ["name", "title", "product_name"],
    "description": ["description"],
    "price": ["price", "sale_price", "search_price"],
    "original_price": ["original_price", "old_price", "rrp_price", "price"],
    "image": ["image", "image_url"],
    "url": ["url", "link"],
    "category": ["category"],
    "brand": ["brand"],
    "barcode": ["ean", "barcode", "gtin"],
    "sku": ["sku"],
}

PROVIDER_FIELDS: dict[str, FieldMapping] = {
    "lomadee": LOMADEE_FIELDS,
    "awin": AWIN_FIELDS,
    "csv": CSV_FIELDS,
    "json": GENERIC_JSON_FIELDS,
    "xml": GENERIC_XML_FIELDS,
}

# Store-level mappings saved by the admin UI used camelCase names
_ALIASES: dict[str, str] = {
    "externalId": "external_id",
    "originalPrice": "original_price",
    "ean": "barcode",
}


def lookup(entry: Mapping[str, Any], key: str) -> Any:
    """Fetch a possibly dotted key from a nested mapping."""
    value: Any = entry
    for part in key.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def resolve_field(entry: Mapping[str, Any], keys: list[str]) -> Any:
    """Return the first non-blank scalar value among ``keys``."""
    for key in keys:
        value = lookup(entry, key)
        if value is None or isinstance(value, (Mapping, list)):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def merge_mapping(
    base: FieldMapping, custom: Mapping[str, str] | None,
) -> FieldMapping:
    """Overlay a store's ``{canonical field: source column}`` mapping.

    A custom column replaces the provider's default keys for that field.
    """
    merged = {name: list(keys) for name, keys in base.items()}
    for name, column in (custom or {}).items():
        canonical = _ALIASES.get(name, name)
        if canonical not in CANONICAL_FIELDS:
            raise ValueError(f"unknown feed field: {name!r}")
        merged[canonical] = [column]
    return merged


def mapping_for(
    feed_type: str, custom: Mapping[str, str] | None = None,
) -> FieldMapping:
    """Resolve the mapping table for a provider plus store overrides."""
    try:
        base = PROVIDER_FIELDS[feed_type]
    except KeyError:
        raise ValueError(f"unsupported feed type: {feed_type!r}") from None
    return merge_mapping(base, custom)
