"""API routes."""

from .admin import router as admin_router
from .complaints import router as complaints_router
from .jobs import router as jobs_router
from .offers import router as offers_router
from .reviews import router as reviews_router
from .upgrades import router as upgrades_router
from .users import router as users_router

__all__ = [
    "admin_router",
    "complaints_router",
    "jobs_router",
    "offers_router",
    "reviews_router",
    "upgrades_router",
    "users_router",
]
