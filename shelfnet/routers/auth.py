"""Auth routes — register, login, refresh, availability checks and password change.

Register, login and refresh each hand back a fresh access/refresh pair.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import EmailStr
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.auth.dependencies import Identity, get_current_user
from shelfnet.auth.jwt_handler import TokenType, create_access_token, create_refresh_token, decode_token
from shelfnet.auth.password import hash_password, verify_password
from shelfnet.database import get_db
from shelfnet.models.user import User, UserRole
from shelfnet.schemas.user import (
    AvailabilityResponse,
    PasswordChange,
    TokenRefresh,
    TokenResponse,
    UserLogin,
    UserRegister,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.role.value),
        refresh_token=create_refresh_token(user.id),
    )


async def _registration_conflict(db: AsyncSession, email: str, username: str) -> str | None:
    result = await db.execute(
        select(User.email, User.username).where(or_(User.email == email, User.username == username))
    )
    rows = result.all()
    if not rows:
        return None
    if any(taken_email == email for taken_email, _ in rows):
        return "Email already registered"
    return "Username already taken"


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserRegister, db: AsyncSession = Depends(get_db)):
    email = data.email.lower()
    conflict = await _registration_conflict(db, email, data.username)
    if conflict:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict)

    user = User(
        email=email,
        username=data.username,
        display_name=data.display_name,
        hashed_password=hash_password(data.password),
        role=UserRole.USER,
    )
    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError:
        # lost a race with a concurrent registration
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email or username already taken")

    logger.info("user_registered", user_id=user.id, username=user.username)
    return _issue_tokens(user)


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(data.password, user.hashed_password):
        logger.warning("login_failed", email=data.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    logger.info("user_logged_in", user_id=user.id)
    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_tokens(data: TokenRefresh, db: AsyncSession = Depends(get_db)):
    """Trade a refresh token for a new pair."""
    claims = decode_token(data.refresh_token, TokenType.REFRESH)
    if claims is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    user = await db.get(User, int(claims["sub"]))
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return _issue_tokens(user)


@router.get("/check-email", response_model=AvailabilityResponse)
async def check_email(email: EmailStr = Query(...), db: AsyncSession = Depends(get_db)):
    """Whether ``email`` is still free to register (compared case-insensitively)."""
    result = await db.execute(select(User.id).where(User.email == email.lower()))
    return AvailabilityResponse(value=email, available=result.first() is None)


@router.get("/check-username", response_model=AvailabilityResponse)
async def check_username(
    username: str = Query(..., min_length=1, max_length=50),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User.id).where(User.username == username))
    return AvailabilityResponse(value=username, available=result.first() is None)


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    data: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    """Replace the caller's password after re-checking the current one."""
    user = await db.get(User, current_user.user_id)
    if user is None or not verify_password(data.current_password, user.hashed_password):
        logger.warning("password_change_failed", user_id=current_user.user_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Incorrect current password")

    user.hashed_password = hash_password(data.new_password)
    await db.flush()
    logger.info("password_changed", user_id=user.id)
