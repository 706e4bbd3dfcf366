"""Marketplace users and roles."""

from marketplace.users.models import (
    VALID_UPGRADE_STATUS_VALUES,
    ProviderProfile,
    ProviderUpgradeStatus,
    SeekerProfile,
    User,
)
from marketplace.users.service import UserService

__all__ = [
    "User",
    "ProviderProfile",
    "SeekerProfile",
    "ProviderUpgradeStatus",
    "VALID_UPGRADE_STATUS_VALUES",
    "UserService",
]
