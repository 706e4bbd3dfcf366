"""User registry.

Users are created on first sight from identity-provider claims; roles come
from those claims. Only the upgrade workflow grants the provider role
after registration.
"""

import logging
from typing import TYPE_CHECKING, Iterable, List, Optional, Union

from marketplace.errors import DuplicateRecordError, NotFoundError, ValidationError
from marketplace.types import Role, normalize_roles
from marketplace.users.models import ProviderUpgradeStatus, User

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class UserService:
    """Registration and lookup of marketplace users."""

    def __init__(self, storage: "MarketplaceStorage"):
        self.storage = storage

    def register(
        self,
        user_id: str,
        roles: Optional[Iterable[Union[Role, str]]] = None,
        provider_verified: bool = False,
    ) -> User:
        """Create a new user. Raises DuplicateRecordError if the ID is taken."""
        try:
            user = User(id=user_id, roles=set(roles or [Role.SEEKER]))
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if user.is_provider:
            user.provider_profile.verified = provider_verified
            user.provider_upgrade_status = ProviderUpgradeStatus.ACCEPTED.value
        self.storage.save_user(user)
        logger.info(f"User registered: {user.id} roles={sorted(user.roles)}")
        return user

    def ensure(self, user_id: str, roles: Optional[Iterable[Union[Role, str]]] = None) -> User:
        """Return the stored user, registering it on first sight.

        Claimed roles never grant provider to an existing user; that only
        happens through an accepted upgrade request. The admin capability
        follows the identity provider.
        """
        user = self.storage.get_user(user_id)
        if user is None:
            try:
                return self.register(user_id, roles)
            except DuplicateRecordError:
                # Registered concurrently by another request
                user = self.storage.get_user(user_id)
                if user is None:
                    raise
        if roles is not None:
            try:
                claimed = normalize_roles(roles)
            except ValueError as e:
                raise ValidationError(str(e)) from e
            if Role.ADMIN.value in claimed and not user.is_admin:
                user.grant_role(Role.ADMIN)
                self.storage.update_user(user)
        return user

    def get(self, user_id: str) -> User:
        user = self.storage.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def list_users(
        self, role: Optional[Union[Role, str]] = None, limit: int = 100, offset: int = 0
    ) -> List[User]:
        role_value = role.value if isinstance(role, Role) else role
        return self.storage.list_users(role=role_value, limit=limit, offset=offset)

    def set_provider_verified(self, user_id: str, verified: bool = True) -> User:
        """Mark a provider as verified. Verification feeds the top-rated rule."""
        with self.storage.transaction():
            user = self.get(user_id)
            if not user.is_provider:
                raise ValidationError(f"User {user_id} is not a provider")
            user.provider_profile.verified = verified
            self.storage.update_user(user)
        logger.info(f"Provider {user_id} verified={verified}")
        return user

    def unblock(self, user_id: str) -> User:
        with self.storage.transaction():
            user = self.get(user_id)
            user.is_blocked = False
            user.blocked_reason = None
            self.storage.update_user(user)
        logger.info(f"User unblocked: {user_id}")
        return user
