"""
Pytest fixtures and test configuration for marketplace tests.
"""

import os
import secrets
from datetime import datetime, timedelta, timezone

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# Must be set before marketplace.api is imported anywhere
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from marketplace.config import MarketplaceConfig  # noqa: E402
from marketplace.core import Marketplace  # noqa: E402
from marketplace.events import InMemoryEventPublisher  # noqa: E402
from marketplace.storage.sqlite import SQLiteStorage  # noqa: E402
from marketplace.types import Actor, Role  # noqa: E402


def future_deadline(days: int = 7) -> datetime:
    """Helper to create a future deadline."""
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture(autouse=True)
def marketplace_home(tmp_path, monkeypatch):
    """Keep logs and default databases out of the real home directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("MARKETPLACE_HOME", str(home))
    monkeypatch.delenv("MARKETPLACE_DATA_DIR", raising=False)
    monkeypatch.delenv("MARKETPLACE_DB_PATH", raising=False)
    return home


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "marketplace.db"


@pytest.fixture
def storage(db_path):
    """SQLite storage in a temporary directory."""
    return SQLiteStorage(db_path)


@pytest.fixture
def config():
    """Create test configuration."""
    return MarketplaceConfig()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def marketplace(storage, config, publisher):
    """Marketplace wired to temporary storage and an in-memory publisher."""
    return Marketplace(storage=storage, config=config, publisher=publisher)


@pytest.fixture
def seeker(marketplace):
    return marketplace.users.register("seeker-1", [Role.SEEKER])


@pytest.fixture
def provider(marketplace):
    return marketplace.users.register("provider-1", [Role.SEEKER, Role.PROVIDER])


@pytest.fixture
def provider2(marketplace):
    return marketplace.users.register("provider-2", [Role.SEEKER, Role.PROVIDER])


@pytest.fixture
def admin(marketplace):
    """Admin caller as the identity layer would hand it to the core."""
    marketplace.users.register("admin-1", [Role.ADMIN])
    return Actor(
        actor_id="admin-1",
        roles=frozenset({Role.ADMIN.value}),
        ip_address="10.0.0.7",
        user_agent="pytest-admin",
    )


@pytest.fixture
def post_job(marketplace, seeker):
    """Factory that posts a job request (budget 100-500 by default)."""

    def _post(
        seeker_id: str = None,
        title: str = "Fix leaking kitchen sink",
        category: str = "plumbing",
        budget_min: float = 100.0,
        budget_max: float = 500.0,
        deadline: datetime = None,
    ):
        return marketplace.jobs.create(
            seeker_id=seeker_id or seeker.id,
            title=title,
            description="The sink drips constantly",
            category=category,
            budget_min=budget_min,
            budget_max=budget_max,
            deadline=deadline or future_deadline(),
        )

    return _post


@pytest.fixture
def assigned_job(marketplace, post_job, provider):
    """An open job with one offer from provider-1, assigned to it."""
    job = post_job()
    offer = marketplace.offers.submit(job.id, provider.id, 300.0, message="Can do tomorrow")
    return marketplace.jobs.assign(job.id, offer.id, job.seeker_id)


@pytest.fixture
def completed_job(marketplace, assigned_job, provider):
    return marketplace.jobs.complete(
        assigned_job.id,
        provider.id,
        images=["https://files.example/after.jpg"],
        description="Replaced the washer",
    )
