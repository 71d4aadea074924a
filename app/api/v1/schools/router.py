from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_cache
from app.auth.rbac import SCHOOLS, require_policy
from app.auth.schemas import IdentityContext
from app.core.cache import ResponseCache
from app.core.pagination import list_query_params
from app.core.schemas import ListQuery, PaginatedResponse
from app.db.session import get_db

from .schemas import SchoolCreate, SchoolResponse, SchoolUpdate
from . import service

router = APIRouter(prefix="/api/v1/schools", tags=["schools"])


@router.post("", response_model=SchoolResponse, status_code=status.HTTP_201_CREATED)
async def create_school(
    payload: SchoolCreate,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(SCHOOLS)),
) -> SchoolResponse:
    return await service.create_school(db, cache, payload)


@router.get("", response_model=PaginatedResponse[SchoolResponse])
async def list_schools(
    query: ListQuery = Depends(list_query_params(service.SORT_FIELDS)),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(SCHOOLS)),
):
    return await service.list_schools(db, cache, query)


@router.get("/{school_id}", response_model=SchoolResponse)
async def get_school(
    school_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(SCHOOLS)),
):
    return await service.get_school(db, cache, school_id)


@router.put("/{school_id}", response_model=SchoolResponse)
async def update_school(
    school_id: UUID,
    payload: SchoolUpdate,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(SCHOOLS)),
) -> SchoolResponse:
    return await service.update_school(db, cache, school_id, payload)


@router.delete("/{school_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_school(
    school_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(SCHOOLS)),
) -> None:
    await service.delete_school(db, cache, school_id)
