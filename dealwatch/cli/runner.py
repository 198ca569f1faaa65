# dealwatch/cli/runner.py

"""Headless command runners: each takes an open store, returns an exit code."""

import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from dealwatch.feeds.fetcher import FeedFetcher, FeedFetchError
from dealwatch.feeds.importer import FeedImporter
from dealwatch.feeds.parsers import FeedParseError
from dealwatch.models.analysis import PriceAnalysis
from dealwatch.models.comparison import ProductGroup
from dealwatch.services.deal_service import DealService, UnauthorizedCheckError
from dealwatch.storage.deal_store import DealStore, RecordNotFoundError

logger = logging.getLogger("dealwatch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_RECOMMENDATION_STYLES: dict[str, str] = {
    "excellent": "bold green",
    "good": "green",
    "average": "yellow",
    "suspicious": "red",
    "avoid": "bold red",
}


def _dump_json(data: Any) -> None:
    json.dump(data, sys.stdout, ensure_ascii=False, indent=2, default=str)
    sys.stdout.write("\n")


def _group_to_dict(group: ProductGroup) -> dict[str, object]:
    """Serialise a comparison group for JSON output."""
    return {
        "name": group.name,
        "barcode": group.barcode,
        "similarity": group.similarity,
        "lowest_price": group.lowest_price,
        "highest_price": group.highest_price,
        "savings": round(group.savings, 2),
        "offers": [
            {
                "product_id": o.product_id,
                "store": o.store_name,
                "price": o.price,
                "original_price": o.original_price,
                "discount": o.discount,
                "url": o.url,
            }
            for o in group.offers
        ],
    }


def _print_groups(groups: list[ProductGroup], title: str) -> None:
    """Render comparison groups as a Rich table, one row per offer."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Product", max_width=50)
    table.add_column("Store", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Savings", justify="right")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, group in enumerate(groups, 1):
        for pos, offer in enumerate(group.offers):
            best = pos == 0
            table.add_row(
                str(idx) if best else "",
                group.name[:50] if best else "",
                offer.store_name,
                f"[bold]{offer.price:,.2f}[/bold]" if best else f"{offer.price:,.2f}",
                f"{group.savings:,.2f}" if best else "",
                offer.url,
            )
    Console().print(table)


def _print_analysis(analysis: PriceAnalysis) -> None:
    style = _RECOMMENDATION_STYLES.get(analysis.recommendation, "")
    verdict = "[green]REAL DEAL[/green]" if analysis.is_real_deal else "[red]NOT VERIFIED[/red]"
    table = Table(title="Deal Analysis", title_style="bold cyan", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Verdict", verdict)
    table.add_row("Deal score", f"{analysis.deal_score}/100")
    table.add_row(
        "Recommendation",
        f"[{style}]{analysis.recommendation}[/{style}]" if style else analysis.recommendation,
    )
    table.add_row("Below average", f"{analysis.discount_from_average:.1f}%")
    table.add_row("Below lowest", f"{analysis.discount_from_lowest:.1f}%")
    table.add_row(
        "Manipulation",
        "yes" if analysis.price_manipulation_detected else "no",
    )
    table.add_row("Analysis", analysis.analysis)
    Console().print(table)


# ── Commands ─────────────────────────────────────────────


def run_add_store(
    store: DealStore,
    name: str,
    feed_url: str = "",
    feed_type: str = "",
    affiliate_id: str = "",
) -> int:
    created = store.create_store(
        name,
        feed_url=feed_url,
        feed_type=feed_type,
        affiliate_id=affiliate_id,
    )
    _err.print(f"[green]✓ Store {created.id} created ({created.slug})[/green]")
    _dump_json(asdict(created))
    return 0


def run_import_feed(
    store: DealStore,
    store_id: int,
    feed_file: str | None = None,
    feed_type: str | None = None,
    feed_url: str | None = None,
    mapping_json: str | None = None,
) -> int:
    """Import a feed from a local file or the store's feed URL."""
    mapping: dict[str, str] | None = None
    if mapping_json:
        try:
            mapping = json.loads(mapping_json)
        except ValueError as exc:
            _err.print(f"[red]Invalid --mapping JSON: {exc}[/red]")
            return 1

    importer = FeedImporter(store)
    try:
        if feed_file is not None:
            kind = feed_type or store.get_store(store_id).feed_type
            content = Path(feed_file).read_bytes()
            result = importer.import_feed(content, kind, store_id, mapping)
        else:
            fetcher = FeedFetcher()
            try:
                result = importer.import_from_store(
                    store_id,
                    fetcher,
                    feed_url=feed_url,
                    feed_type=feed_type,
                    mapping=mapping,
                )
            finally:
                fetcher.close()
    except (FeedParseError, FeedFetchError, RecordNotFoundError, OSError) as exc:
        logger.error("Feed import failed: %s", exc, exc_info=True)
        _err.print(f"[red]Import failed: {exc}[/red]")
        return 1

    _err.print(f"[green]✓ Import complete: {result.summary()}[/green]")
    _dump_json({
        "imported": result.imported,
        "updated": result.updated,
        "errors": result.errors,
    })
    return 0


def run_analyze(
    service: DealService,
    product_id: int,
    promo_price: float,
    original_price: float,
    output_format: str = "json",
) -> int:
    try:
        analysis = service.analyze_deal(product_id, promo_price, original_price)
    except RecordNotFoundError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    if output_format == "table":
        _print_analysis(analysis)
    else:
        _dump_json(asdict(analysis))
    return 0


def run_stats(service: DealService, product_id: int, days: int) -> int:
    try:
        stats = service.get_price_stats(product_id, days)
    except RecordNotFoundError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    if stats is None:
        _err.print(
            f"[yellow]Insufficient price history in the last {days} days.[/yellow]"
        )
        _dump_json(None)
        return 0
    _dump_json(asdict(stats))
    return 0


def run_promote(
    service: DealService,
    product_id: int,
    promo_price: float,
    original_price: float,
    title: str | None = None,
) -> int:
    try:
        promotion, analysis = service.create_promotion(
            product_id, promo_price, original_price, title=title,
        )
    except (RecordNotFoundError, ValueError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    _err.print(
        f"[green]✓ Promotion {promotion.id}: score "
        f"{analysis.deal_score} ({analysis.recommendation})[/green]"
    )
    _dump_json({"promotion": asdict(promotion), "analysis": asdict(analysis)})
    return 0


def run_compare(
    service: DealService,
    barcode: str | None,
    name: str | None,
    limit: int,
    output_format: str = "json",
) -> int:
    """Compare one item across stores, or list the best deals."""
    if barcode or name:
        groups = service.find_matches(barcode=barcode, name=name)
        title = f"Matches for {barcode or name}"
    else:
        groups = service.get_best_deals(limit)
        title = "Best Cross-Store Deals"

    if not groups:
        _err.print("[yellow]No comparable products found.[/yellow]")
        return 1

    _err.print(f"[green]✓ {len(groups)} groups[/green]")
    if output_format == "table":
        _print_groups(groups, title)
    else:
        _dump_json([_group_to_dict(g) for g in groups])
    return 0


def run_similar(
    service: DealService,
    product_id: int,
    output_format: str = "json",
) -> int:
    """List products resembling one product, most similar first."""
    try:
        similar = service.find_similar(product_id)
    except RecordNotFoundError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    if not similar:
        _err.print("[yellow]No similar products found.[/yellow]")
        return 1

    _err.print(f"[green]✓ {len(similar)} similar products[/green]")
    if output_format == "table":
        table = Table(
            title=f"Similar to product {product_id}", title_style="bold cyan",
        )
        table.add_column("ID", style="dim")
        table.add_column("Product", max_width=50)
        table.add_column("Store", style="magenta")
        table.add_column("Price", justify="right", style="green")
        table.add_column("Similarity", justify="right")
        for product, similarity in similar:
            table.add_row(
                str(product.id),
                product.name[:50],
                str(product.store_id),
                f"{product.current_price:,.2f}",
                f"{similarity:.0f}%",
            )
        Console().print(table)
    else:
        _dump_json([
            {
                "product_id": product.id,
                "store_id": product.store_id,
                "name": product.name,
                "price": product.current_price,
                "url": product.url,
                "similarity": similarity,
            }
            for product, similarity in similar
        ])
    return 0


def run_check(service: DealService, secret: str | None = None) -> int:
    """Scheduled check entry point (called periodically from cron)."""
    try:
        summary = service.run_scheduled_check(secret=secret)
    except UnauthorizedCheckError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    _err.print(
        f"[green]✓ {summary.products_checked} products checked, "
        f"{summary.promotions_rescored} promotions rescored, "
        f"{summary.promotions_expired} expired[/green]"
    )
    _dump_json(asdict(summary))
    return 0


def run_chart(store: DealStore, product_id: int, open_browser: bool) -> int:
    from dealwatch.storage.chart_exporter import export_price_chart

    try:
        path = export_price_chart(product_id, store, open_browser=open_browser)
    except RecordNotFoundError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    if path is None:
        _err.print("[yellow]Need at least 2 price points for a chart.[/yellow]")
        return 1
    _err.print(f"[dim]Chart saved → {path}[/dim]")
    return 0


def run_add_product(
    service: DealService,
    store_id: int,
    name: str,
    price: float,
    original_price: float | None = None,
    barcode: str | None = None,
    url: str = "",
) -> int:
    try:
        product = service.create_product(
            store_id,
            name,
            price,
            original_price=original_price,
            barcode=barcode,
            url=url,
        )
    except (RecordNotFoundError, ValueError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    _err.print(f"[green]✓ Product {product.id} created ({product.slug})[/green]")
    _dump_json(asdict(product))
    return 0
