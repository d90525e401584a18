"""Request identity from the bearer token, plus the admin guard.

The token proves who the caller is; the users table decides whether that
account may still act, so deactivation and role changes apply immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.auth.jwt_handler import TokenType, decode_token
from shelfnet.database import get_db
from shelfnet.models.user import User, UserRole

bearer = HTTPBearer()
optional_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def _identity(token: str, db: AsyncSession) -> Identity:
    claims = decode_token(token, TokenType.ACCESS)
    user = await db.get(User, int(claims["sub"])) if claims is not None else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")
    return Identity(user_id=user.id, role=user.role)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    return await _identity(credentials.credentials, db)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer),
    db: AsyncSession = Depends(get_db),
) -> Optional[Identity]:
    """Anonymous callers resolve to None; a bad token is still rejected."""
    if credentials is None:
        return None
    return await _identity(credentials.credentials, db)


async def require_admin(identity: Identity = Depends(get_current_user)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return identity
