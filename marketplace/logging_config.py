"""Logging setup for the marketplace.

Two sinks:
- the "marketplace" logger, writing to logs/local-{date}.log
- an append-only event log, logs/marketplace-events-{date}.log, one line per
  published domain event
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from marketplace.config import get_marketplace_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_log_dir() -> Path:
    """Directory for log files, honoring MARKETPLACE_DATA_DIR."""
    override = os.environ.get("MARKETPLACE_DATA_DIR")
    base = Path(override).expanduser() if override else get_marketplace_home()
    return base / "logs"


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the marketplace namespace."""
    if name != "marketplace" and not name.startswith("marketplace."):
        name = f"marketplace.{name}"
    return logging.getLogger(name)


def setup_marketplace_logging(level: str = "INFO") -> logging.Logger:
    """Configure the "marketplace" logger with a dated file handler.

    Safe to call repeatedly; handlers are only added once. DEBUG also logs
    to the console.
    """
    logger = logging.getLogger("marketplace")
    resolved = getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(log_dir / f"local-{_today()}.log")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if resolved <= logging.DEBUG and not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger


def log_marketplace_event(event_type: str, details: str) -> None:
    """Append one line to the marketplace event log."""
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).isoformat()
    with open(log_dir / f"marketplace-events-{_today()}.log", "a", encoding="utf-8") as f:
        f.write(f"{timestamp} | {event_type} | {details}\n")
