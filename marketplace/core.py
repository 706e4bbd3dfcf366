"""
Marketplace Core - service marketplace for seekers and providers.

This module provides the Marketplace class, the primary interface for
marketplace operations. It wires the storage backend, configuration,
category registry and event publisher into the individual services and
exposes them as attributes:

    m = Marketplace()
    job = m.jobs.create(seeker_id, "Fix sink", ...)
    offer = m.offers.submit(job.id, provider_id, 300)
    m.jobs.assign(job.id, offer.id, seeker_id)
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from marketplace.categories import CategoryRegistry, StaticCategoryRegistry
from marketplace.config import MarketplaceConfig
from marketplace.errors import ForbiddenError
from marketplace.events import EventPublisher, LoggingEventPublisher
from marketplace.jobs.service import JobRequestService
from marketplace.moderation.service import ModerationEngine
from marketplace.offers.service import OfferLedger
from marketplace.reviews.ratings import RatingAggregator
from marketplace.reviews.service import ReviewGate
from marketplace.storage.sqlite import SQLiteStorage
from marketplace.types import Actor
from marketplace.upgrades.service import UpgradeWorkflow
from marketplace.users.models import User
from marketplace.users.service import UserService

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class Marketplace:
    """Entry point that owns one storage backend and every service on top of it."""

    def __init__(
        self,
        storage: Optional["MarketplaceStorage"] = None,
        config: Optional[MarketplaceConfig] = None,
        categories: Optional[CategoryRegistry] = None,
        publisher: Optional[EventPublisher] = None,
        db_path: Optional[Path] = None,
    ):
        """
        Initialize the marketplace.

        Args:
            storage: Storage backend. Defaults to SQLite at config.resolved_db_path
            config: Limits and thresholds. Defaults to MarketplaceConfig.from_env()
            categories: Active-category registry. Defaults to config.active_categories
            publisher: Event publisher. Defaults to the event log file
            db_path: Shortcut for a SQLite path; ignored when storage is given
        """
        self.config = config or MarketplaceConfig.from_env()
        if storage is None:
            storage = SQLiteStorage(db_path or self.config.resolved_db_path)
        self.storage = storage
        self.categories = categories or StaticCategoryRegistry(self.config.active_categories)
        self.publisher = publisher if publisher is not None else LoggingEventPublisher()

        self.users = UserService(self.storage)
        self.ratings = RatingAggregator(self.storage, self.config)
        self.offers = OfferLedger(self.storage, self.config, self.publisher)
        self.jobs = JobRequestService(
            self.storage,
            self.config,
            categories=self.categories,
            ratings=self.ratings,
            publisher=self.publisher,
        )
        self.reviews = ReviewGate(self.storage, self.ratings, self.config)
        self.moderation = ModerationEngine(self.storage, self.config, self.publisher)
        self.upgrades = UpgradeWorkflow(self.storage, self.config, self.publisher)

        logger.debug(f"Marketplace initialized with {type(self.storage).__name__}")

    def verify_provider(self, user_id: str, admin: Actor, verified: bool = True) -> User:
        """Set a provider's verified flag and refresh their top-rated badge."""
        if not admin.is_admin:
            raise ForbiddenError("Only admins can verify providers")
        self.users.set_provider_verified(user_id, verified)
        self.ratings.recompute(user_id)
        return self.users.get(user_id)

    def dashboard_stats(self) -> Dict[str, Any]:
        """Counts for the admin dashboard."""
        jobs = self.storage.count_jobs_by_status()
        upgrades = self.storage.count_upgrade_requests_by_status()
        return {
            "users": {
                "total": self.storage.count_users(),
                "seekers": self.storage.count_users("seeker"),
                "providers": self.storage.count_users("provider"),
                "admins": self.storage.count_users("admin"),
            },
            "jobs": {"total": sum(jobs.values()), "by_status": jobs},
            "complaints": self.moderation.stats(),
            "upgrade_requests": {
                "total": sum(upgrades.values()),
                "pending": upgrades.get("pending", 0),
                "by_status": upgrades,
            },
        }
