# dealwatch/storage/chart_exporter.py

"""Generate interactive Plotly HTML charts from a product's price history."""

import importlib
import logging
import webbrowser
from datetime import datetime
from pathlib import Path
from types import ModuleType
from typing import Any

from dealwatch.config.settings import Settings
from dealwatch.models.price_point import PricePoint
from dealwatch.models.product import Product
from dealwatch.storage.deal_store import DealStore, slugify

logger = logging.getLogger("dealwatch.chart")


def _get_plotly_go() -> ModuleType:
    """Import plotly.graph_objects lazily."""
    return importlib.import_module("plotly.graph_objects")


def _ensure_charts_dir() -> Path:
    charts_dir: Path = Settings.CHARTS_DIR
    charts_dir.mkdir(parents=True, exist_ok=True)
    return charts_dir


def build_price_chart(
    points: list[PricePoint],
    product: Product,
) -> Any:
    """Build a Plotly line chart of one product's price history."""
    go = _get_plotly_go()
    dates = [p.recorded_at for p in points]
    prices = [p.price for p in points]

    fig: Any = go.Figure()
    fig.add_trace(go.Scatter(
        x=dates,
        y=prices,
        mode="lines+markers",
        name=product.name[:50],
        customdata=[p.source for p in points],
        hovertemplate=(
            "%{x|%Y-%m-%d %H:%M}<br>"
            "Price: %{y:.2f}<br>"
            "Source: %{customdata}"
            "<extra></extra>"
        ),
    ))

    min_price = min(prices)
    max_price = max(prices)
    fig.add_annotation(
        x=dates[prices.index(min_price)], y=min_price,
        text=f"Min: {min_price:.2f}",
        showarrow=True, arrowhead=2,
    )
    fig.add_annotation(
        x=dates[prices.index(max_price)], y=max_price,
        text=f"Max: {max_price:.2f}",
        showarrow=True, arrowhead=2,
    )
    if product.average_price is not None:
        fig.add_hline(
            y=product.average_price,
            line_dash="dot",
            annotation_text=f"Avg: {product.average_price:.2f}",
        )

    fig.update_layout(
        title=f"Price History: {product.name[:60]}",
        xaxis_title="Date",
        yaxis_title="Price",
        hovermode="x unified",
        template="plotly_white",
    )
    return fig


def export_price_chart(
    product_id: int,
    store: DealStore,
    open_browser: bool = True,
) -> Path | None:
    """Write a product's price chart as HTML; ``None`` if too few points."""
    product = store.get_product(product_id)
    points = store.get_price_points(product_id)
    if len(points) < 2:
        logger.warning(
            "Not enough data points for chart of product %d",
            product_id,
        )
        return None

    fig = build_price_chart(points, product)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = (
        _ensure_charts_dir()
        / f"{slugify(product.name)[:30]}_{product_id}_{stamp}.html"
    )
    fig.write_html(str(filepath))
    logger.info("Chart saved to %s", filepath)

    if open_browser:
        webbrowser.open(filepath.as_uri())

    return filepath
