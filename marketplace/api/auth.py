"""Authentication utilities for the marketplace API.

Identity is delegated: an upstream identity provider issues JWTs whose
``sub`` is the user ID and whose ``roles`` claim lists the capabilities it
asserts. This module only verifies and decodes them.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated, Iterable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from marketplace.types import Actor, Role, normalize_roles

from .config import Settings, get_settings
from .rate_limit import get_client_ip

# Bearer token scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


def create_access_token(
    actor_id: str,
    settings: Settings,
    roles: Iterable[str] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for a user.

    Used by tests and local tooling; production tokens come from the
    identity provider.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": actor_id,
        "roles": sorted(normalize_roles(roles or [Role.SEEKER])),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthContext:
    """Context from JWT token: who is calling, with which roles, from where."""

    def __init__(
        self,
        actor_id: str,
        roles: frozenset[str],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ):
        self.actor_id = actor_id
        self.roles = roles
        self.ip_address = ip_address
        self.user_agent = user_agent

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in self.roles

    def to_actor(self) -> Actor:
        return Actor(
            actor_id=self.actor_id,
            roles=self.roles,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext:
    """Get the current authenticated caller from the bearer token."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated - provide Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials, settings)
    actor_id = payload.get("sub")
    if not actor_id or payload.get("type", "access") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        roles = normalize_roles(payload.get("roles") or [Role.SEEKER])
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid roles claim",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthContext(
        actor_id=actor_id,
        roles=roles,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


# Type alias for dependency injection
CurrentActor = Annotated[AuthContext, Depends(get_current_actor)]
