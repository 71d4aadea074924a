from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.schemas import IdentityContext
from app.auth.security import ACCESS_TOKEN_TYPE
from app.auth.services import is_token_revoked, verify_token
from app.core.cache import ResponseCache
from app.core.enums import UserRole
from app.core.exceptions import InvalidToken, Unauthenticated

bearer_scheme = HTTPBearer(auto_error=False)


def get_cache(request: Request) -> ResponseCache:
    """Cache handle built at startup and kept on the application state."""
    return request.app.state.cache


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    cache: ResponseCache = Depends(get_cache),
) -> IdentityContext:
    """Resolve the Identity Context from the bearer token. Never touches the store."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("No token")
    token = credentials.credentials

    if await is_token_revoked(cache, token):
        raise Unauthenticated("Token revoked")

    payload = verify_token(token, ACCESS_TOKEN_TYPE)

    try:
        role = UserRole(payload.get("role"))
        user_id = UUID(payload["sub"])
        school_id = UUID(payload["schoolId"]) if payload.get("schoolId") else None
    except (KeyError, ValueError) as e:
        raise InvalidToken() from e
    if role == UserRole.SCHOOLADMIN and school_id is None:
        raise InvalidToken()

    return IdentityContext(
        user_id=user_id,
        role=role,
        school_id=school_id,
        token=token,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
