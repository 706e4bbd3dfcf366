"""Marketplace storage backends.

This module provides the storage abstraction layer for the marketplace.
Local-first storage using SQLite.
"""

from .base import MarketplaceStorage
from .schema import ALLOWED_TABLES, SCHEMA_VERSION, validate_table_name
from .sqlite import SQLiteStorage

__all__ = [
    "MarketplaceStorage",
    "SQLiteStorage",
    "SCHEMA_VERSION",
    "ALLOWED_TABLES",
    "validate_table_name",
]
