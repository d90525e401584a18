"""Access and refresh JWTs. Every token carries a fresh ``jti`` so a refresh always rotates both."""

from __future__ import annotations

import enum
import uuid
from datetime import timedelta
from typing import Any, Optional

from jose import JWTError, jwt

from shelfnet.config import get_settings
from shelfnet.database import utcnow


class TokenType(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


def _issue(user_id: int, token_type: TokenType, lifetime: timedelta, **claims: Any) -> str:
    settings = get_settings()
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "type": token_type.value,
        "iat": now,
        "exp": now + lifetime,
        "jti": uuid.uuid4().hex,
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: int, role: str) -> str:
    minutes = get_settings().access_token_expire_minutes
    return _issue(user_id, TokenType.ACCESS, timedelta(minutes=minutes), role=role)


def create_refresh_token(user_id: int) -> str:
    days = get_settings().refresh_token_expire_days
    return _issue(user_id, TokenType.REFRESH, timedelta(days=days))


def decode_token(token: str, expected: TokenType) -> Optional[dict[str, Any]]:
    """Claims of a valid, unexpired token of the ``expected`` type; otherwise None."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if claims.get("type") != expected.value or "sub" not in claims:
        return None
    return claims
