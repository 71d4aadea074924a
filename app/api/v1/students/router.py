from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_cache
from app.auth.rbac import STUDENTS, require_policy
from app.auth.schemas import IdentityContext
from app.core.cache import ResponseCache
from app.core.pagination import list_query_params
from app.core.schemas import ListQuery, PaginatedResponse
from app.db.session import get_db

from .schemas import EnrollRequest, StudentCreate, StudentResponse, StudentUpdate
from . import service

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(STUDENTS)),
) -> StudentResponse:
    return await service.create_student(db, cache, identity, payload)


@router.get("", response_model=PaginatedResponse[StudentResponse])
async def list_students(
    school_id: Optional[UUID] = Query(None, alias="schoolId"),
    classroom_id: Optional[UUID] = Query(None, alias="classroomId"),
    query: ListQuery = Depends(list_query_params(service.SORT_FIELDS)),
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(STUDENTS)),
):
    return await service.list_students(db, cache, identity, school_id, classroom_id, query)


@router.get("/{student_id}", response_model=StudentResponse)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(STUDENTS)),
):
    return await service.get_student(db, cache, identity, student_id)


@router.put("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(STUDENTS)),
) -> StudentResponse:
    return await service.update_student(db, cache, identity, student_id, payload)


@router.put("/{student_id}/enroll", response_model=StudentResponse)
async def enroll_student(
    student_id: UUID,
    payload: EnrollRequest,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(STUDENTS)),
) -> StudentResponse:
    return await service.enroll_student(db, cache, identity, student_id, payload)


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
    identity: IdentityContext = Depends(require_policy(STUDENTS)),
) -> None:
    await service.delete_student(db, cache, identity, student_id)
