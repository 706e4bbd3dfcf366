"""
Marketplace - a local services marketplace core.

Seekers post job requests, providers bid on them, the seeker assigns one
offer, the provider completes the work and both sides review each other.
"""

from .core import Marketplace
from .errors import (
    ConflictError,
    ForbiddenError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)
from .types import Actor, Role

try:
    from importlib.metadata import version

    __version__ = version("marketplace")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "Marketplace",
    "Actor",
    "Role",
    "MarketplaceError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
]
