from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_cache
from app.auth.rbac import CLASSROOMS, require_policy
from app.auth.schemas import IdentityContext
from app.core.cache import ResponseCache
from app.core.pagination import list_query_params
from app.core.schemas import ListQuery, PaginatedResponse
from app.db.session import get_db

from .schemas import ClassroomCreate, ClassroomResponse, ClassroomUpdate
from . import service

router = APIRouter(prefix="/api/v1/classrooms", tags=["classrooms"])


@router.post("", response_model=ClassroomResponse, status_code=status.HTTP_201_CREATED)
async def create_classroom(
    payload: ClassroomCreate,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(CLASSROOMS)),
) -> ClassroomResponse:
    return await service.create_classroom(db, cache, identity, payload)


@router.get("", response_model=PaginatedResponse[ClassroomResponse])
async def list_classrooms(
    school_id: Optional[UUID] = Query(None, alias="schoolId"),
    query: ListQuery = Depends(list_query_params(service.SORT_FIELDS)),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(CLASSROOMS)),
):
    """schooladmin always sees their own school; superadmin sees one school or all of them."""
    return await service.list_classrooms(db, cache, identity, school_id, query)


@router.get("/{classroom_id}", response_model=ClassroomResponse)
async def get_classroom(
    classroom_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(CLASSROOMS)),
):
    return await service.get_classroom(db, cache, identity, classroom_id)


@router.put("/{classroom_id}", response_model=ClassroomResponse)
async def update_classroom(
    classroom_id: UUID,
    payload: ClassroomUpdate,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(CLASSROOMS)),
) -> ClassroomResponse:
    return await service.update_classroom(db, cache, identity, classroom_id, payload)


@router.delete("/{classroom_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_classroom(
    classroom_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(CLASSROOMS)),
) -> None:
    await service.delete_classroom(db, cache, identity, classroom_id)
