import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import ensure_payload_scope, ensure_record_scope, resolve_list_scope
from app.auth.schemas import IdentityContext
from app.core.cache import CacheKeys, ResponseCache
from app.core.exceptions import Conflict, InvalidReference, NotFound, ValidationFailed
from app.core.models import Classroom, School, Student
from app.core.pagination import paginate
from app.core.schemas import ListQuery

from .schemas import ClassroomCreate, ClassroomResponse, ClassroomUpdate

logger = logging.getLogger(__name__)

COLLECTION = "classrooms"
SORT_FIELDS = {
    "name": "name",
    "capacity": "capacity",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _classroom_to_response(c: Classroom) -> ClassroomResponse:
    return ClassroomResponse(
        id=c.id,
        school_id=c.school_id,
        name=c.name,
        capacity=c.capacity,
        resources=list(c.resources or []),
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _to_item(c: Classroom) -> Dict[str, Any]:
    return _classroom_to_response(c).model_dump(mode="json", by_alias=True)


async def _get_classroom_or_404(db: AsyncSession, classroom_id: UUID) -> Classroom:
    obj = await db.get(Classroom, classroom_id)
    if not obj:
        raise NotFound("Classroom not found")
    return obj


async def count_enrolled(db: AsyncSession, classroom_id: UUID) -> int:
    result = await db.execute(select(func.count(Student.id)).where(Student.classroom_id == classroom_id))
    return result.scalar_one()


async def create_classroom(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    payload: ClassroomCreate,
) -> ClassroomResponse:
    ensure_payload_scope(identity, payload.school_id)
    school_id = payload.school_id or identity.school_id
    if school_id is None:
        raise ValidationFailed("Validation failed", details=["schoolId is required"])
    if not await db.get(School, school_id):
        raise InvalidReference("School does not exist")

    obj = Classroom(
        school_id=school_id,
        name=payload.name.strip(),
        capacity=payload.capacity,
        resources=payload.resources,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION, school_id)
    logger.info("Created classroom %s in school %s", obj.id, school_id)
    return _classroom_to_response(obj)


async def list_classrooms(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    school_id: Optional[UUID],
    query: ListQuery,
) -> Dict[str, Any]:
    scope = resolve_list_scope(identity, school_id)
    conditions = [Classroom.school_id == scope] if scope is not None else []

    async def _load() -> Dict[str, Any]:
        return await paginate(db, Classroom, conditions, query, _to_item)

    return await cache.get_or_load(CacheKeys.list_key(COLLECTION, scope, query), _load)


async def get_classroom(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    classroom_id: UUID,
) -> Dict[str, Any]:
    async def _load() -> Optional[Dict[str, Any]]:
        obj = await db.get(Classroom, classroom_id)
        return _to_item(obj) if obj else None

    data = await cache.get_or_load(CacheKeys.entity_key(COLLECTION, classroom_id), _load, cache.entity_ttl)
    if data is None:
        raise NotFound("Classroom not found")
    ensure_record_scope(identity, UUID(data["schoolId"]))
    return data


async def update_classroom(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    classroom_id: UUID,
    payload: ClassroomUpdate,
) -> ClassroomResponse:
    obj = await _get_classroom_or_404(db, classroom_id)
    ensure_record_scope(identity, obj.school_id)
    ensure_payload_scope(identity, payload.school_id)
    if payload.school_id is not None and payload.school_id != obj.school_id:
        raise ValidationFailed("Validation failed", details=["schoolId cannot be changed"])

    if payload.capacity is not None and payload.capacity < obj.capacity:
        enrolled = await count_enrolled(db, classroom_id)
        if payload.capacity < enrolled:
            raise Conflict(f"Capacity cannot be lower than current enrollment ({enrolled})")

    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.capacity is not None:
        obj.capacity = payload.capacity
    if payload.resources is not None:
        obj.resources = payload.resources
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION, obj.school_id, classroom_id)
    return _classroom_to_response(obj)


async def delete_classroom(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    classroom_id: UUID,
) -> None:
    obj = await _get_classroom_or_404(db, classroom_id)
    ensure_record_scope(identity, obj.school_id)
    if await count_enrolled(db, classroom_id) > 0:
        raise Conflict("Cannot delete classroom with enrolled students")
    school_id = obj.school_id
    await db.delete(obj)
    await db.commit()
    await cache.invalidate(COLLECTION, school_id, classroom_id)
    logger.info("Deleted classroom %s", classroom_id)
