from fastapi import APIRouter, Depends
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_cache
from app.auth.rbac import AUTHENTICATED, SUPERADMIN_ONLY, require_policy
from app.auth.schemas import (
    IdentityContext,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from app.auth.services import login_user, logout_user, refresh_access_token, register_user
from app.core.cache import ResponseCache
from app.core.rate_limiter import login_rate_limit
from app.core.schemas import MessageResponse
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=http_status.HTTP_201_CREATED,
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    identity: IdentityContext = Depends(require_policy(SUPERADMIN_ONLY)),
) -> RegisterResponse:
    """Create a user. Only a superadmin can register superadmins or school admins."""
    return await register_user(db, payload)


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
    dependencies=[Depends(login_rate_limit)],
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    return await login_user(db, payload)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    payload: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    return await refresh_access_token(db, payload.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(AUTHENTICATED)),
) -> MessageResponse:
    await logout_user(db, cache, identity)
    return MessageResponse(message="Logged out")
