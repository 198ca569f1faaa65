# dealwatch/feeds/parsers.py

"""Parse raw partner feed payloads into canonical feed records.

Three payload shapes are understood: JSON (a list of offer objects,
either bare or under ``products`` / ``offers`` / ``items``), XML with
repeated ``<product>`` blocks, and delimited text with a header row.
A payload that cannot be read at all raises :class:`FeedParseError`;
a single bad entry only bumps the error count.
"""

import csv
import io
import json
import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from bs4 import BeautifulSoup

from dealwatch.feeds.field_mappings import FieldMapping, resolve_field
from dealwatch.models.feed import FeedRecord

logger = logging.getLogger("dealwatch.feeds")

# Optional currency marker around one number, nothing else
_PRICE_RE = re.compile(
    r"(?:[A-Z]{1,3}\$?|[$€£])?\s*"
    r"(?P<mantissa>-?(?:\d{1,3}(?:[.,]\d{3})+(?:[.,]\d+)?"
    r"|\d+(?:[.,]\d+)?|[.,]\d+))"
    r"(?P<exponent>[eE][+-]?\d+)?"
    r"\s*(?:[A-Z]{3}|[$€£])?"
)

_OFFER_LIST_KEYS: tuple[str, ...] = ("products", "offers", "items")

_CSV_DELIMITERS = ",;\t|"

FEED_FORMATS: dict[str, str] = {
    "lomadee": "json",
    "json": "json",
    "awin": "xml",
    "xml": "xml",
    "csv": "csv",
}


class FeedParseError(Exception):
    """The payload as a whole could not be parsed."""


class InvalidFeedEntry(ValueError):
    """One feed entry failed validation and must be skipped."""


def decode_payload(content: str | bytes) -> str:
    """Decode feed bytes as UTF-8 (BOM tolerated), else Latin-1."""
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Feed is not UTF-8, decoding as Latin-1")
        return content.decode("latin-1")


def _normalise_separators(number: str) -> str:
    """Turn ``1.299,90`` / ``1,299.90`` / ``10,5`` into float syntax."""
    if "," in number and "." in number:
        if number.rfind(",") > number.rfind("."):
            return number.replace(".", "").replace(",", ".")
        return number.replace(",", "")
    if "," in number:
        tail = number.rpartition(",")[2]
        if number.count(",") == 1 and len(tail) != 3:
            return number.replace(",", ".")
        return number.replace(",", "")
    if number.count(".") > 1:
        return number.replace(".", "")
    return number


def parse_price(value: Any) -> float:
    """Parse a feed price into a positive finite float.

    Accepts numbers and numeric strings with an optional currency
    marker (``R$ 1.299,90``).  Raises :class:`InvalidFeedEntry` for
    anything else, including zero and negative prices.
    """
    if value is None or isinstance(value, bool):
        raise InvalidFeedEntry(f"missing or non-numeric price: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _PRICE_RE.fullmatch(str(value).strip())
        if not match:
            raise InvalidFeedEntry(f"unparsable price: {value!r}")
        mantissa = _normalise_separators(match["mantissa"])
        try:
            number = float(mantissa + (match["exponent"] or ""))
        except ValueError as exc:
            raise InvalidFeedEntry(f"unparsable price: {value!r}") from exc
    if not math.isfinite(number) or number <= 0:
        raise InvalidFeedEntry(f"price must be positive: {value!r}")
    return number


def _text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def to_feed_record(
    entry: Any, fields: FieldMapping,
) -> FeedRecord:
    """Map one raw entry onto a :class:`FeedRecord`.

    Name, price and url are required.  An unusable original price is
    dropped rather than failing the entry.
    """
    if not isinstance(entry, Mapping):
        raise InvalidFeedEntry(f"entry is not an object: {entry!r}")

    def field(name: str) -> Any:
        return resolve_field(entry, fields.get(name, []))

    name = _text(field("name"))
    url = _text(field("url"))
    if not name:
        raise InvalidFeedEntry("entry has no name")
    if not url:
        raise InvalidFeedEntry(f"entry {name!r} has no url")
    price = parse_price(field("price"))

    original_price: float | None = None
    raw_original = field("original_price")
    if raw_original is not None:
        try:
            original_price = parse_price(raw_original)
        except InvalidFeedEntry:
            logger.debug(
                "Ignoring bad original price %r for %r",
                raw_original, name,
            )

    return FeedRecord(
        external_id=_text(field("external_id")),
        name=name,
        price=price,
        url=url,
        original_price=original_price,
        description=_text(field("description")),
        image=_text(field("image")),
        category=_text(field("category")),
        brand=_text(field("brand")),
        barcode=_text(field("barcode")),
        sku=_text(field("sku")),
    )


# ── Payload shapes ───────────────────────────────────────


def extract_json_entries(text: str) -> list[Any]:
    """Return the offer list of a JSON feed."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise FeedParseError(f"invalid JSON feed: {exc}") from exc

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _OFFER_LIST_KEYS:
            offers = data.get(key)
            if isinstance(offers, list):
                return offers
        logger.warning(
            "JSON feed has no %s list (keys: %s)",
            "/".join(_OFFER_LIST_KEYS),
            ", ".join(sorted(data)[:10]),
        )
        return []
    raise FeedParseError(
        f"JSON feed root must be an object or list, got {type(data).__name__}"
    )


def extract_xml_entries(text: str) -> list[dict[str, str]]:
    """Return one flat ``{tag: text}`` dict per ``<product>`` block."""
    soup = BeautifulSoup(text, "xml")
    if soup.find() is None:
        raise FeedParseError("XML feed contains no elements")

    entries: list[dict[str, str]] = []
    for product in soup.find_all("product"):
        entry: dict[str, str] = {}
        for child in product.find_all(recursive=False):
            entry[child.name] = child.get_text(strip=True)
        entries.append(entry)
    return entries


def extract_csv_entries(text: str) -> list[dict[str, str]]:
    """Return one dict per data row of a delimited feed with a header."""
    lines = text.lstrip("\ufeff").splitlines()
    header = next((ln for ln in lines if ln.strip()), "")
    if not header:
        raise FeedParseError("delimited feed has no header row")
    try:
        delimiter = csv.Sniffer().sniff(
            header, delimiters=_CSV_DELIMITERS,
        ).delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.reader(
        io.StringIO(text.lstrip("\ufeff")), delimiter=delimiter,
    )
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    columns = [c.strip().strip('"') for c in rows[0]]
    entries: list[dict[str, str]] = []
    for row in rows[1:]:
        entries.append({
            col: row[idx].strip() if idx < len(row) else ""
            for idx, col in enumerate(columns)
        })
    return entries


def extract_entries(text: str, feed_format: str) -> list[Any]:
    """Dispatch to the extractor for ``json``, ``xml`` or ``csv``."""
    if feed_format == "json":
        return extract_json_entries(text)
    if feed_format == "xml":
        return extract_xml_entries(text)
    if feed_format == "csv":
        return extract_csv_entries(text)
    raise FeedParseError(f"unsupported feed format: {feed_format!r}")


def parse_feed(
    content: str | bytes,
    feed_format: str,
    fields: FieldMapping,
) -> tuple[list[FeedRecord], int]:
    """Parse a whole payload.

    Returns the valid records in input order and the count of entries
    that were skipped as invalid.
    """
    entries = extract_entries(decode_payload(content), feed_format)
    records: list[FeedRecord] = []
    errors = 0
    for position, entry in enumerate(entries, 1):
        try:
            records.append(to_feed_record(entry, fields))
        except InvalidFeedEntry as exc:
            errors += 1
            logger.debug("Skipped feed entry #%d: %s", position, exc)

    if errors:
        logger.info(
            "Feed parsing skipped %d of %d entries",
            errors,
            len(entries),
        )
    return records, errors
