# dealwatch/ui/app.py

"""Terminal dashboard for browsing cross-store deals."""

import asyncio
import logging
import webbrowser
from pathlib import Path
from typing import cast

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Static,
)

from dealwatch.config.settings import Settings
from dealwatch.matching.cross_store import CrossStoreMatcher
from dealwatch.models.comparison import ProductGroup
from dealwatch.storage.deal_store import DealStore

logger = logging.getLogger("dealwatch.ui")

_BARCODE_CHARS = frozenset("0123456789")


def _looks_like_barcode(query: str) -> bool:
    """EAN/GTIN codes are 8 to 14 digits."""
    return 8 <= len(query) <= 14 and set(query) <= _BARCODE_CHARS


class DealDashboardApp(App[object]):
    """Best cross-store deals, with barcode or name search."""

    CSS = """
    #search_bar { height: auto; }
    #search_input { width: 1fr; }
    #status { height: 1; padding: 0 1; }
    #deals_table { height: 1fr; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("b", "best_deals", "Best Deals"),
        Binding("r", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        db_path: Path | None = None,
        store: DealStore | None = None,
    ) -> None:
        super().__init__()
        self._owns_store = store is None
        self.store = store if store is not None else DealStore(db_path)
        self.matcher = CrossStoreMatcher(self.store)
        self.groups: list[ProductGroup] = []
        self.current_query: str = ""

    def compose(self) -> ComposeResult:
        """Build the widget tree for the TUI."""
        yield Header()
        yield Container(
            Static("🏷️  Deal Watch: cross-store price comparison", id="title"),
            Horizontal(
                Input(
                    placeholder="Barcode or product name...",
                    id="search_input",
                ),
                Button("Search", variant="primary", id="search_btn"),
                id="search_bar",
            ),
            Static("Ready", id="status"),
            cast(
                DataTable[str | Text],
                DataTable(
                    id="deals_table",
                    zebra_stripes=True,
                    cursor_type="row",
                ),
            ),
            id="main_container",
        )
        yield Footer()

    async def on_mount(self) -> None:
        """Configure the table columns and show the best deals."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#deals_table", DataTable),
        )
        table.add_columns(
            "Product", "Best Price", "Store", "Stores", "Savings",
        )
        await self.load_best_deals()

    def on_unmount(self) -> None:
        if self._owns_store:
            self.store.close()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button click events."""
        if event.button.id == "search_btn":
            await self.perform_search()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle Enter key in the search input."""
        if event.input.id == "search_input":
            await self.perform_search()

    async def load_best_deals(self) -> None:
        status = self.query_one("#status", Static)
        self.current_query = ""
        try:
            self.groups = await asyncio.to_thread(
                self.matcher.get_best_deals, Settings.BEST_DEALS_LIMIT,
            )
        except Exception as exc:
            logger.error("Loading best deals failed", exc_info=True)
            self.notify(f"Error: {exc}", severity="error")
            self.groups = []
        self.populate_table()
        if self.groups:
            status.update(f"🔥 {len(self.groups)} best deals")
        else:
            status.update("No products sold by two or more stores yet")

    async def perform_search(self) -> None:
        """Match the query as a barcode if it looks like one, else a name."""
        query = self.query_one("#search_input", Input).value.strip()
        if not query:
            self.notify("Please enter a barcode or name", severity="warning")
            return

        self.current_query = query
        status = self.query_one("#status", Static)
        status.update(f"🔍 Searching '{query}'...")
        if _looks_like_barcode(query):
            search = self.matcher.match_barcode
        else:
            search = self.matcher.match_name
        try:
            self.groups = await asyncio.to_thread(search, query)
        except Exception as exc:
            logger.error(
                "Search for '%s' failed", query, exc_info=True,
            )
            self.notify(f"Error: {exc}", severity="error")
            self.groups = []
        self.populate_table()
        if self.groups:
            status.update(f"✅ {len(self.groups)} groups for '{query}'")
        else:
            status.update("❌ No matching products")

    def populate_table(self) -> None:
        """Fill the DataTable with one row per comparison group."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#deals_table", DataTable),
        )
        table.clear()
        for group in self.groups:
            best = group.best_offer
            if best is None:
                continue
            table.add_row(
                group.name[:60],
                Text(f"{best.price:,.2f}", style="bold green"),
                best.store_name,
                str(group.store_count),
                f"{group.savings:,.2f}" if group.savings else "",
            )

    def on_data_table_row_selected(
        self, event: DataTable.RowSelected
    ) -> None:
        """Open the cheapest offer's URL in the default browser."""
        if 0 <= event.cursor_row < len(self.groups):
            best = self.groups[event.cursor_row].best_offer
            if best is not None and best.url:
                webbrowser.open(best.url)

    async def action_best_deals(self) -> None:
        self.query_one("#search_input", Input).value = ""
        await self.load_best_deals()

    async def action_refresh(self) -> None:
        if self.current_query:
            await self.perform_search()
        else:
            await self.load_best_deals()
