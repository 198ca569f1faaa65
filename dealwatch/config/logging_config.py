# dealwatch/config/logging_config.py

"""Per-run timestamped logging configuration for dealwatch.

Each process launch (CLI command, dashboard, scheduled check) creates a
dedicated log file inside ``logs/`` named with the launch timestamp
(e.g. ``logs/run_20260214_153045.log``).  All ``dealwatch.*`` loggers
route through this file handler, so a feed import, the deal analysis it
triggers and any persistence error land in the same per-run log.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from dealwatch.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(module)s:%(funcName)s:%(lineno)d | "
    "%(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging() -> Path:
    """Initialise the root ``dealwatch`` logger for the current run.

    The file handler records DEBUG and above; stderr only shows
    warnings and errors.

    Returns:
        The :class:`~pathlib.Path` to the log file created for this run.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    root_logger = logging.getLogger("dealwatch")
    root_logger.setLevel(logging.DEBUG)

    # Repeated calls (tests, TUI relaunch) keep the first handlers
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info("Logging initialised, log file: %s", log_file)

    return log_file
