"""Seeker-to-provider upgrade requests."""

from marketplace.upgrades.models import UpgradeRequest, UpgradeRequestStatus
from marketplace.upgrades.service import UpgradeWorkflow

__all__ = ["UpgradeRequest", "UpgradeRequestStatus", "UpgradeWorkflow"]
