"""Shared FastAPI dependencies."""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, status

from marketplace.config import MarketplaceConfig
from marketplace.core import Marketplace
from marketplace.types import Actor

from .auth import CurrentActor
from .config import get_settings


@lru_cache
def get_marketplace() -> Marketplace:
    """Process-wide Marketplace instance."""
    settings = get_settings()
    config = MarketplaceConfig.from_env()
    if settings.database_path:
        config.db_path = Path(settings.database_path).expanduser()
    return Marketplace(config=config)


MarketplaceDep = Annotated[Marketplace, Depends(get_marketplace)]


def get_actor(auth: CurrentActor, m: MarketplaceDep) -> Actor:
    """Resolve the caller, registering them on first sight."""
    m.users.ensure(auth.actor_id, auth.roles)
    return auth.to_actor()


def get_admin(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    """Require the admin capability."""
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return actor


ActorDep = Annotated[Actor, Depends(get_actor)]
AdminActor = Annotated[Actor, Depends(get_admin)]
