# tests/test_cli.py

"""Tests for the headless CLI runners and argument routing."""

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from dealwatch.cli import runner
from dealwatch.config.settings import Settings
from dealwatch.services.deal_service import DealService
from dealwatch.storage.deal_store import DealStore

import main


class TestRunners(unittest.TestCase):
    """Runner functions return exit codes and print JSON."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = DealStore(db_path=Path(self.tmp_dir) / "test.db")
        self.service = DealService(self.store)
        self.shop = self.store.create_store("Loja A")

    def tearDown(self) -> None:
        self.store.close()

    def _capture(self, func: object, *args: object) -> tuple[int, str]:
        buf = io.StringIO()
        with redirect_stdout(buf):
            code = func(*args)  # type: ignore[operator]
        return code, buf.getvalue()

    def test_import_feed_from_file(self) -> None:
        feed = Path(self.tmp_dir) / "feed.csv"
        feed.write_text(
            "id,name,price,url\n1,Mesa,350.00,https://x/1\n2,,1,x\n",
            encoding="utf-8",
        )
        code, out = self._capture(
            runner.run_import_feed, self.store, self.shop.id,
            str(feed), "csv",
        )
        self.assertEqual(code, 0)
        self.assertEqual(
            json.loads(out), {"imported": 1, "updated": 0, "errors": 1},
        )

    def test_import_feed_bad_payload(self) -> None:
        feed = Path(self.tmp_dir) / "feed.json"
        feed.write_text("{nope", encoding="utf-8")
        code, _ = self._capture(
            runner.run_import_feed, self.store, self.shop.id,
            str(feed), "json",
        )
        self.assertEqual(code, 1)

    def test_import_feed_bad_mapping_json(self) -> None:
        code = runner.run_import_feed(
            self.store, self.shop.id, None, "csv", None, "{not json",
        )
        self.assertEqual(code, 1)

    def test_analyze_json(self) -> None:
        product = self.service.create_product(self.shop.id, "Mesa", 100)
        code, out = self._capture(
            runner.run_analyze, self.service, product.id, 80.0, 100.0,
        )
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data["deal_score"], 50)
        self.assertFalse(data["is_real_deal"])

    def test_analyze_unknown_product(self) -> None:
        code = runner.run_analyze(self.service, 999, 80.0, 100.0)
        self.assertEqual(code, 1)

    def test_stats_insufficient(self) -> None:
        product = self.service.create_product(self.shop.id, "Mesa", 100)
        code, out = self._capture(
            runner.run_stats, self.service, product.id, 90,
        )
        self.assertEqual(code, 0)
        self.assertIsNone(json.loads(out))

    def test_compare_without_matches(self) -> None:
        code = runner.run_compare(self.service, "000", None, 10)
        self.assertEqual(code, 1)

    def test_similar_by_product(self) -> None:
        other = self.store.create_store("Loja B")
        source = self.service.create_product(
            self.shop.id, "Panela Inox 5L", 200, barcode="789",
        )
        twin = self.service.create_product(
            other.id, "Panela 5L", 150, barcode="789",
        )
        code, out = self._capture(
            runner.run_similar, self.service, source.id,
        )
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data[0]["product_id"], twin.id)
        self.assertEqual(data[0]["similarity"], 100.0)

    def test_similar_unknown_product(self) -> None:
        self.assertEqual(runner.run_similar(self.service, 999), 1)

    def test_check_wrong_secret(self) -> None:
        with patch.object(Settings, "CRON_SECRET", "abc"):
            code = runner.run_check(self.service, "xyz")
        self.assertEqual(code, 1)


class TestMainRouting(unittest.TestCase):
    """Sub-commands open the store, dispatch and exit."""

    def test_parser_subcommands(self) -> None:
        parser = main._build_parser()
        args = parser.parse_args(["analyze", "3", "79.9", "99.9"])
        self.assertEqual(args.command, "analyze")
        self.assertEqual(args.product_id, 3)
        self.assertEqual(args.output_format, "json")

    def test_compare_product_id_flag(self) -> None:
        args = main._build_parser().parse_args(
            ["compare", "--product-id", "4", "-f", "table"],
        )
        self.assertEqual(args.product_id, 4)
        self.assertEqual(args.output_format, "table")

    def test_no_command_means_tui(self) -> None:
        args = main._build_parser().parse_args([])
        self.assertIsNone(args.command)

    def test_add_store_then_best_deals(self) -> None:
        db = str(Path(tempfile.mkdtemp()) / "cli.db")
        with patch("main.setup_logging"):
            with redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as ctx:
                    main.main(["--db", db, "add-store", "Loja CLI"])
            self.assertEqual(ctx.exception.code, 0)
            with redirect_stdout(io.StringIO()):
                with self.assertRaises(SystemExit) as ctx:
                    main.main(["--db", db, "best-deals"])
            # Nothing comparable yet
            self.assertEqual(ctx.exception.code, 1)


if __name__ == "__main__":
    unittest.main()
