# dealwatch/config/settings.py

"""Central configuration for the dealwatch engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the dealwatch engine."""

    # --- Analysis windows ---
    STATS_WINDOW_DAYS: int = 90         # Lookback for price statistics
    MANIPULATION_WINDOW_DAYS: int = 30  # Lookback for fake-discount scan
    MIN_STATS_POINTS: int = 3           # Fewer points => insufficient data
    MIN_MANIPULATION_POINTS: int = 5
    TREND_RECENT_POINTS: int = 7        # Recent sub-window for trend
    TREND_DEADBAND: float = 0.05        # +/- fraction of the average

    # --- Manipulation detector ---
    MANIPULATION_SPIKE_PERCENT: float = 20.0
    MANIPULATION_DROP_PERCENT: float = 15.0
    MANIPULATION_BASELINE_PERCENT: float = 10.0

    # --- Deal scoring (empirical, tunable) ---
    SCORE_BASE: float = 50.0
    SCORE_BELOW_AVG_MULTIPLIER: float = 1.5
    SCORE_BELOW_AVG_CAP: float = 30.0
    SCORE_ABOVE_AVG_MULTIPLIER: float = 2.0
    SCORE_ABOVE_AVG_CAP: float = 30.0
    SCORE_ALL_TIME_LOW_BONUS: float = 20.0
    SCORE_NEAR_LOW_BONUS: float = 10.0
    SCORE_NEAR_LOW_FACTOR: float = 1.05
    SCORE_MANIPULATION_PENALTY: float = 25.0
    SCORE_INFLATED_ORIGINAL_PENALTY: float = 15.0
    SCORE_TREND_ADJUSTMENT: float = 5.0
    ORIGINAL_PRICE_TOLERANCE: float = 1.10  # x historical highest
    REAL_DEAL_MIN_SCORE: float = 60.0
    REAL_DEAL_MIN_DISCOUNT: float = 5.0
    RECOMMENDATION_CUTOFFS: dict[str, float] = {
        "excellent": 80.0,
        "good": 65.0,
        "average": 45.0,
        "suspicious": 30.0,
    }

    # --- Cross-store matching ---
    MIN_TOKEN_LENGTH: int = 3           # Tokens must be longer than this
    SIMILARITY_THRESHOLD: float = 50.0
    BEST_DEALS_LIMIT: int = 20
    BEST_DEALS_SCAN_LIMIT: int = 500    # Most recently updated products
    NAME_SEARCH_LIMIT: int = 100

    # --- Feed transport ---
    REQUEST_DELAY: float = 2.0          # Seconds between retries
    REQUEST_TIMEOUT: int = 30           # Seconds before a fetch times out
    MAX_RETRIES: int = 3
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "application/json,application/xml;q=0.9,"
            "text/csv;q=0.8,*/*;q=0.5"
        ),
        "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    DB_PATH: Path = Path(
        os.getenv("DEALWATCH_DB_PATH", str(DATA_DIR / "dealwatch.db"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
    CHARTS_DIR: Path = DATA_DIR / "charts"

    # --- Scheduled check ---
    CRON_SECRET: str = os.getenv("DEALWATCH_CRON_SECRET", "")

    # --- Feed formats (registry for future providers) ---
    FEED_TYPES: list[dict[str, str]] = [
        {"id": "lomadee", "label": "Lomadee (JSON)", "format": "json"},
        {"id": "awin", "label": "Awin (XML)", "format": "xml"},
        {"id": "csv", "label": "Generic CSV", "format": "csv"},
        {"id": "json", "label": "Generic JSON", "format": "json"},
        {"id": "xml", "label": "Generic XML", "format": "xml"},
    ]
