import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.cache import CacheKeys, ResponseCache
from app.core.exceptions import Conflict, NotFound
from app.core.models import Classroom, School, Student
from app.core.pagination import paginate
from app.core.schemas import ListQuery

from .schemas import SchoolCreate, SchoolResponse, SchoolUpdate

logger = logging.getLogger(__name__)

COLLECTION = "schools"
SORT_FIELDS = {"name": "name", "createdAt": "created_at", "updatedAt": "updated_at"}


def _school_to_response(s: School) -> SchoolResponse:
    return SchoolResponse(
        id=s.id,
        name=s.name,
        address=s.address,
        contact_email=s.contact_email,
        phone=s.phone,
        profile=s.profile or None,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def _to_item(s: School) -> Dict[str, Any]:
    return _school_to_response(s).model_dump(mode="json", by_alias=True)


async def _get_school_or_404(db: AsyncSession, school_id: UUID) -> School:
    obj = await db.get(School, school_id)
    if not obj:
        raise NotFound("School not found")
    return obj


async def create_school(db: AsyncSession, cache: ResponseCache, payload: SchoolCreate) -> SchoolResponse:
    obj = School(
        name=payload.name.strip(),
        address=payload.address,
        contact_email=payload.contact_email,
        phone=payload.phone,
        profile=payload.profile.model_dump(exclude_none=True) if payload.profile else None,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION)
    logger.info("Created school %s", obj.id)
    return _school_to_response(obj)


async def list_schools(db: AsyncSession, cache: ResponseCache, query: ListQuery) -> Dict[str, Any]:
    key = CacheKeys.list_key(COLLECTION, None, query)

    async def _load() -> Dict[str, Any]:
        return await paginate(db, School, [], query, _to_item)

    return await cache.get_or_load(key, _load)


async def get_school(db: AsyncSession, cache: ResponseCache, school_id: UUID) -> Dict[str, Any]:
    async def _load() -> Optional[Dict[str, Any]]:
        obj = await db.get(School, school_id)
        return _to_item(obj) if obj else None

    data = await cache.get_or_load(CacheKeys.entity_key(COLLECTION, school_id), _load, cache.entity_ttl)
    if data is None:
        raise NotFound("School not found")
    return data


async def update_school(
    db: AsyncSession,
    cache: ResponseCache,
    school_id: UUID,
    payload: SchoolUpdate,
) -> SchoolResponse:
    obj = await _get_school_or_404(db, school_id)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes:
        obj.name = changes["name"].strip()
    for field in ("address", "contact_email", "phone"):
        if field in changes:
            setattr(obj, field, changes[field])
    if "profile" in changes:
        obj.profile = payload.profile.model_dump(exclude_none=True) if payload.profile else None
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION, entity_id=school_id)
    return _school_to_response(obj)


async def delete_school(db: AsyncSession, cache: ResponseCache, school_id: UUID) -> None:
    obj = await _get_school_or_404(db, school_id)
    for model, label in ((Classroom, "classrooms"), (Student, "students"), (User, "users")):
        in_use = await db.execute(select(exists().where(model.school_id == school_id)))
        if in_use.scalar():
            raise Conflict(f"Cannot delete school with existing {label}")
    await db.delete(obj)
    await db.commit()
    await cache.invalidate(COLLECTION, entity_id=school_id)
    logger.info("Deleted school %s", school_id)
