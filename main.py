# main.py

"""Entry point for the dealwatch application (TUI or headless CLI)."""

import argparse
import logging
import sys
from pathlib import Path

from dealwatch.config.logging_config import setup_logging
from dealwatch.config.settings import Settings

logger = logging.getLogger("dealwatch.main")


def _add_format_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    feed_ids = [f["id"] for f in Settings.FEED_TYPES]

    parser = argparse.ArgumentParser(
        prog="dealwatch",
        description="Affiliate deal verification and price comparison.",
        epilog=f"Feed types: {', '.join(feed_ids)}",
    )
    parser.add_argument(
        "--db",
        default=None,
        help=f"SQLite database path (default: {Settings.DB_PATH}).",
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("add-store", help="Register a partner store.")
    p.add_argument("name")
    p.add_argument("--feed-url", default="")
    p.add_argument("--feed-type", choices=feed_ids, default="")
    p.add_argument("--affiliate-id", default="")

    p = sub.add_parser("add-product", help="Manually add a product.")
    p.add_argument("store_id", type=int)
    p.add_argument("name")
    p.add_argument("price", type=float)
    p.add_argument("--original-price", type=float, default=None)
    p.add_argument("--barcode", default=None)
    p.add_argument("--url", default="")

    p = sub.add_parser(
        "import-feed",
        help="Import a feed from a file, or fetch the store's feed URL.",
    )
    p.add_argument("store_id", type=int)
    p.add_argument("--file", default=None, dest="feed_file")
    p.add_argument("--type", choices=feed_ids, default=None, dest="feed_type")
    p.add_argument("--url", default=None, dest="feed_url")
    p.add_argument(
        "--mapping",
        default=None,
        help='Custom field mapping as JSON, e.g. \'{"price": "preco"}\'.',
    )

    p = sub.add_parser("analyze", help="Score a claimed discount.")
    p.add_argument("product_id", type=int)
    p.add_argument("promo_price", type=float)
    p.add_argument("original_price", type=float)
    _add_format_flag(p)

    p = sub.add_parser("promote", help="Create a scored promotion.")
    p.add_argument("product_id", type=int)
    p.add_argument("promo_price", type=float)
    p.add_argument("original_price", type=float)
    p.add_argument("--title", default=None)

    p = sub.add_parser("stats", help="Price statistics for a product.")
    p.add_argument("product_id", type=int)
    p.add_argument("--days", type=int, default=Settings.STATS_WINDOW_DAYS)

    p = sub.add_parser("compare", help="Compare an item across stores.")
    p.add_argument("--barcode", default=None)
    p.add_argument("--name", default=None)
    p.add_argument(
        "--product-id",
        type=int,
        default=None,
        help="List products resembling this product instead.",
    )
    _add_format_flag(p)

    p = sub.add_parser("best-deals", help="Biggest cross-store savings.")
    p.add_argument("--limit", type=int, default=Settings.BEST_DEALS_LIMIT)
    _add_format_flag(p)

    p = sub.add_parser("check", help="Scheduled check (cron).")
    p.add_argument("--secret", default=None)

    p = sub.add_parser("chart", help="Export a price history chart.")
    p.add_argument("product_id", type=int)
    p.add_argument("--no-open", action="store_true", default=False)

    return parser


def _run_tui(db_path: Path | None) -> None:
    """Launch the interactive Textual TUI."""
    from dealwatch.ui.app import DealDashboardApp

    try:
        app = DealDashboardApp(db_path=db_path)
        app.run()
    except Exception:
        logger.critical("Fatal error during TUI run", exc_info=True)
        raise
    finally:
        logger.info("dealwatch TUI shutting down")


def _run_command(args: argparse.Namespace, db_path: Path | None) -> int:
    """Open the store once, dispatch the sub-command, close the store."""
    from dealwatch.cli import runner
    from dealwatch.services.deal_service import DealService
    from dealwatch.storage.deal_store import DealStore

    with DealStore(db_path) as store:
        service = DealService(store)
        if args.command == "add-store":
            return runner.run_add_store(
                store, args.name, args.feed_url, args.feed_type,
                args.affiliate_id,
            )
        if args.command == "add-product":
            return runner.run_add_product(
                service, args.store_id, args.name, args.price,
                args.original_price, args.barcode, args.url,
            )
        if args.command == "import-feed":
            return runner.run_import_feed(
                store, args.store_id, args.feed_file, args.feed_type,
                args.feed_url, args.mapping,
            )
        if args.command == "analyze":
            return runner.run_analyze(
                service, args.product_id, args.promo_price,
                args.original_price, args.output_format,
            )
        if args.command == "promote":
            return runner.run_promote(
                service, args.product_id, args.promo_price,
                args.original_price, args.title,
            )
        if args.command == "stats":
            return runner.run_stats(service, args.product_id, args.days)
        if args.command == "compare":
            if args.product_id is not None:
                return runner.run_similar(
                    service, args.product_id, args.output_format,
                )
            if not (args.barcode or args.name):
                logger.warning(
                    "compare called without --barcode, --name or --product-id"
                )
            return runner.run_compare(
                service, args.barcode, args.name,
                Settings.BEST_DEALS_LIMIT, args.output_format,
            )
        if args.command == "best-deals":
            return runner.run_compare(
                service, None, None, args.limit, args.output_format,
            )
        if args.command == "check":
            return runner.run_check(service, args.secret)
        if args.command == "chart":
            return runner.run_chart(
                store, args.product_id, open_browser=not args.no_open,
            )
    raise ValueError(f"unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Route to TUI (no sub-command) or a headless sub-command."""
    log_file = setup_logging()
    logger.info("dealwatch starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args(argv)
    db_path = Path(args.db) if args.db else None

    if args.command is None:
        _run_tui(db_path)
    else:
        sys.exit(_run_command(args, db_path))


if __name__ == "__main__":
    main()
