import logging
from functools import lru_cache
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import (
    IdentityContext,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserInfo,
)
from app.auth.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    remaining_lifetime,
    verify_password,
)
from app.core.cache import CacheKeys, ResponseCache
from app.core.enums import UserRole
from app.core.exceptions import InvalidReference, InvalidToken, Unauthenticated, ValidationFailed
from app.core.models import School

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password("not-a-real-password")


def issue_access_token(user: User) -> str:
    return create_access_token(user.id, user.role, user.school_id)


async def issue_refresh_token(db: AsyncSession, user: User) -> str:
    """Issue a refresh token and store it as the user's only valid one (older sessions stop refreshing)."""
    token = create_refresh_token(user.id)
    user.refresh_token = token
    await db.commit()
    return token


def verify_token(token: str, token_type: Optional[str] = None) -> dict:
    return decode_token(token, token_type)


async def revoke_token(cache: ResponseCache, token: str) -> None:
    """Blacklist a token until it can no longer pass verification on its own."""
    try:
        claims = decode_token(token)
    except InvalidToken:
        # Already unusable, nothing to track
        return
    await cache.set(CacheKeys.blacklist_key(token), "1", remaining_lifetime(claims))


async def is_token_revoked(cache: ResponseCache, token: str) -> bool:
    return await cache.exists(CacheKeys.blacklist_key(token))


async def refresh_access_token(db: AsyncSession, refresh_token: str) -> TokenResponse:
    claims = decode_token(refresh_token, REFRESH_TOKEN_TYPE)
    try:
        user_id = UUID(claims["sub"])
    except ValueError as e:
        raise InvalidToken("Invalid refresh token") from e

    user = await db.get(User, user_id)
    # Only the most recently issued refresh token is accepted
    if not user or not user.refresh_token or user.refresh_token != refresh_token:
        raise InvalidToken("Invalid refresh token")
    return TokenResponse(token=issue_access_token(user))


async def register_user(db: AsyncSession, payload: RegisterRequest) -> RegisterResponse:
    existing = await db.execute(select(User.id).where(User.username == payload.username))
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailed("Username taken")

    if payload.role == UserRole.SCHOOLADMIN:
        school = await db.get(School, payload.school_id)
        if not school:
            raise InvalidReference("School does not exist")

    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password),
        role=payload.role.value,
        school_id=payload.school_id,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ValidationFailed("Username taken") from e
    await db.refresh(user)
    logger.info("Registered %s user %s", user.role, user.username)

    return RegisterResponse(
        user_id=user.id,
        username=user.username,
        role=UserRole(user.role),
        school_id=user.school_id,
    )


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    result = await db.execute(select(User).where(User.username == payload.username.strip()))
    user: Optional[User] = result.scalar_one_or_none()
    if not user:
        # Spend the same bcrypt time as a real check so unknown usernames are not distinguishable
        verify_password(payload.password, _dummy_password_hash())
    # Same error for unknown user and wrong password
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login attempt for username %r", payload.username)
        raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)

    token = issue_access_token(user)
    refresh_token = await issue_refresh_token(db, user)

    return LoginResponse(
        token=token,
        refresh_token=refresh_token,
        user=UserInfo(id=user.id, role=UserRole(user.role), school_id=user.school_id),
    )


async def logout_user(db: AsyncSession, cache: ResponseCache, identity: IdentityContext) -> None:
    await revoke_token(cache, identity.token)
    user = await db.get(User, identity.user_id)
    if user:
        user.refresh_token = None
        await db.commit()
    logger.info("User %s logged out", identity.user_id)
