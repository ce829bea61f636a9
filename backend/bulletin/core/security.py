"""
Authentication boundary.

A request is authenticated by a JWT carried in the `Authorization: Bearer`
header or the `token` cookie. The token subject is the user ID; the user
must still exist and be active.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Depends, Request
from jose import JWTError, jwt
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.config import settings
from bulletin.core.database import get_db
from bulletin.core.errors import Forbidden, Unauthenticated
from bulletin.models.user import User, UserRole


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    user_id: int
    role: UserRole
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_access_token(user: User, expires_minutes: int | None = None) -> str:
    """
    Issue an access token for a user.

    Args:
        user: Token owner
        expires_minutes: Lifetime override

    Returns:
        Encoded JWT
    """
    expires = datetime.utcnow() + timedelta(
        minutes=expires_minutes or settings.jwt_access_token_expire_minutes
    )
    payload = {"sub": str(user.id), "exp": expires}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _read_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()
    return request.cookies.get("token")


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal | None:
    """Principal for the request, or None when it carries no valid session."""
    token = _read_token(request)
    if not token:
        return None

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError) as e:
        logger.debug(f"Rejected access token: {e}")
        return None

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None

    return Principal(user_id=user.id, role=user.role, is_active=user.is_active)


async def require_principal(
    principal: Principal | None = Depends(get_current_principal),
) -> Principal:
    """Dependency for endpoints that need a signed-in user."""
    if principal is None:
        raise Unauthenticated()
    return principal


async def require_admin(
    principal: Principal = Depends(require_principal),
) -> Principal:
    """Dependency for administrator-only endpoints."""
    if not principal.is_admin:
        raise Forbidden("Administrator rights required")
    return principal
