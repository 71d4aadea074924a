from datetime import datetime, timedelta, timezone
import math
import secrets
from typing import Any, Dict, Optional, Union
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from app.core.config import settings
from app.core.exceptions import InvalidToken

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(plain_password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # In case the stored hash is invalid/corrupted
        return False


def _create_token(claims: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    issued_at = datetime.now(timezone.utc)
    to_encode = claims.copy()
    to_encode.update(
        {
            "type": token_type,
            "iat": int(issued_at.timestamp()),
            "exp": issued_at + expires_delta,
            # Unique per token so two tokens issued in the same second never collide
            "jti": secrets.token_urlsafe(16),
        }
    )
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(
    user_id: Union[UUID, str],
    role: str,
    school_id: Optional[Union[UUID, str]],
    expires_minutes: Optional[int] = None,
) -> str:
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes
    claims = {
        "sub": str(user_id),
        "role": role,
        "schoolId": str(school_id) if school_id else None,
    }
    return _create_token(claims, ACCESS_TOKEN_TYPE, timedelta(minutes=expires_minutes))


def create_refresh_token(user_id: Union[UUID, str], expires_days: Optional[int] = None) -> str:
    if expires_days is None:
        expires_days = settings.refresh_token_expire_days
    return _create_token({"sub": str(user_id)}, REFRESH_TOKEN_TYPE, timedelta(days=expires_days))


def decode_token(token: str, token_type: Optional[str] = None) -> Dict[str, Any]:
    """Verify signature and expiry; optionally enforce the token type."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise InvalidToken() from e
    if not payload.get("sub") or not payload.get("exp"):
        raise InvalidToken()
    if token_type and payload.get("type") != token_type:
        raise InvalidToken(f"Invalid token type. Expected {token_type}")
    return payload


def remaining_lifetime(claims: Dict[str, Any]) -> int:
    """
    Whole seconds the token is still accepted for, never less than one.

    jose only rejects a token once the clock passes ``exp``, so the count is
    rounded up and padded by a second to cover that last accepted second.
    """
    return max(1, math.ceil(claims["exp"] - datetime.now(timezone.utc).timestamp()) + 1)
