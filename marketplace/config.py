"""Configuration for the marketplace core."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: Tuple[str, ...] = (
    "cleaning",
    "plumbing",
    "electrical",
    "moving",
    "tutoring",
    "gardening",
    "repairs",
    "other",
)


def get_marketplace_home() -> Path:
    """Directory for local marketplace data (database, logs).

    Honors MARKETPLACE_HOME, defaulting to ~/.marketplace.
    """
    override = os.environ.get("MARKETPLACE_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".marketplace"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


@dataclass
class MarketplaceConfig:
    """Tunable limits and thresholds.

    The top-rated rule is::

        rating >= top_rated_min_rating
        AND review_count > top_rated_min_reviews
        AND total_jobs_completed > top_rated_min_completed_jobs
        AND provider is verified
    """

    top_rated_min_rating: float = 4.8
    top_rated_min_reviews: int = 10
    top_rated_min_completed_jobs: int = 30

    max_upgrade_requests: int = 3

    max_title_length: int = 100
    max_description_length: int = 2000
    max_offer_message_length: int = 1000
    max_review_comment_length: int = 1000
    max_complaint_description_length: int = 1000
    max_admin_notes_length: int = 1000

    active_categories: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_CATEGORIES)
    db_path: Optional[Path] = None

    def __post_init__(self):
        if not 0 <= self.top_rated_min_rating <= 5:
            raise ValueError("top_rated_min_rating must be between 0 and 5")
        if self.max_upgrade_requests < 1:
            raise ValueError("max_upgrade_requests must be at least 1")
        if self.db_path is not None and not isinstance(self.db_path, Path):
            self.db_path = Path(self.db_path)
        self.active_categories = tuple(
            c.strip().lower() for c in self.active_categories if c.strip()
        )

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or get_marketplace_home() / "marketplace.db"

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        """Build a config from MARKETPLACE_* environment variables."""
        categories = os.environ.get("MARKETPLACE_CATEGORIES")
        db_path = os.environ.get("MARKETPLACE_DB_PATH")
        return cls(
            top_rated_min_rating=_env_float("MARKETPLACE_TOP_RATED_MIN_RATING", 4.8),
            top_rated_min_reviews=_env_int("MARKETPLACE_TOP_RATED_MIN_REVIEWS", 10),
            top_rated_min_completed_jobs=_env_int("MARKETPLACE_TOP_RATED_MIN_JOBS", 30),
            max_upgrade_requests=_env_int("MARKETPLACE_MAX_UPGRADE_REQUESTS", 3),
            active_categories=(
                tuple(categories.split(",")) if categories else DEFAULT_CATEGORIES
            ),
            db_path=Path(db_path).expanduser() if db_path else None,
        )
