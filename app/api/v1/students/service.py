import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.auth.rbac import ensure_payload_scope, ensure_record_scope, resolve_list_scope
from app.auth.schemas import IdentityContext
from app.core.cache import CacheKeys, ResponseCache
from app.core.exceptions import CapacityExceeded, InvalidReference, NotFound, ValidationFailed
from app.core.models import Classroom, School, Student
from app.core.pagination import paginate
from app.core.schemas import ListQuery
from app.db.session import utcnow

from .schemas import EnrollRequest, StudentCreate, StudentResponse, StudentUpdate

logger = logging.getLogger(__name__)

COLLECTION = "students"
SORT_FIELDS = {
    "name": "name",
    "age": "age",
    "enrollmentDate": "enrollment_date",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

INVALID_CLASSROOM_MESSAGE = "Invalid classroom for this school"


def _student_to_response(s: Student) -> StudentResponse:
    return StudentResponse(
        id=s.id,
        school_id=s.school_id,
        classroom_id=s.classroom_id,
        name=s.name,
        age=s.age,
        enrollment_date=s.enrollment_date,
        profile=s.profile or None,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def _to_item(s: Student) -> Dict[str, Any]:
    return _student_to_response(s).model_dump(mode="json", by_alias=True)


async def _get_student_or_404(db: AsyncSession, student_id: UUID) -> Student:
    obj = await db.get(Student, student_id)
    if not obj:
        raise NotFound("Student not found")
    return obj


async def _lock_classroom(db: AsyncSession, school_id: UUID, classroom_id: UUID) -> Classroom:
    """Load a classroom of ``school_id``, locking its row for the rest of the transaction."""
    result = await db.execute(select(Classroom).where(Classroom.id == classroom_id).with_for_update())
    classroom = result.scalar_one_or_none()
    if not classroom or classroom.school_id != school_id:
        raise InvalidReference(INVALID_CLASSROOM_MESSAGE)
    return classroom


async def _claim_seat(db: AsyncSession, student_id: UUID, classroom: Classroom) -> None:
    """
    Move a student into ``classroom`` only while it has a free seat.

    The seat count and the write are one UPDATE statement, so two requests
    racing for the last seat cannot both find it free. An existing enrollment
    date is kept.
    """
    other = aliased(Student)
    enrolled = (
        select(func.count(other.id))
        .where(other.classroom_id == classroom.id, other.id != student_id)
        .scalar_subquery()
    )
    result = await db.execute(
        update(Student)
        .where(Student.id == student_id, enrolled < classroom.capacity)
        .values(
            classroom_id=classroom.id,
            enrollment_date=func.coalesce(Student.enrollment_date, utcnow()),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise CapacityExceeded()


async def create_student(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    payload: StudentCreate,
) -> StudentResponse:
    ensure_payload_scope(identity, payload.school_id)
    school_id = payload.school_id or identity.school_id
    if school_id is None:
        raise ValidationFailed("Validation failed", details=["schoolId is required"])
    if not await db.get(School, school_id):
        raise InvalidReference("School does not exist")

    classroom = None
    if payload.classroom_id is not None:
        classroom = await _lock_classroom(db, school_id, payload.classroom_id)

    # Inserted unenrolled; the seat is claimed in the same transaction
    obj = Student(
        school_id=school_id,
        name=payload.name.strip(),
        age=payload.age,
        enrollment_date=payload.enrollment_date,
        profile=payload.profile.model_dump(exclude_none=True) if payload.profile else None,
    )
    db.add(obj)
    if classroom is not None:
        await db.flush()
        await _claim_seat(db, obj.id, classroom)
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION, school_id)
    logger.info("Created student %s in school %s", obj.id, school_id)
    return _student_to_response(obj)


async def list_students(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    school_id: Optional[UUID],
    classroom_id: Optional[UUID],
    query: ListQuery,
) -> Dict[str, Any]:
    scope = resolve_list_scope(identity, school_id)
    conditions = []
    if scope is not None:
        conditions.append(Student.school_id == scope)
    if classroom_id is not None:
        conditions.append(Student.classroom_id == classroom_id)

    async def _load() -> Dict[str, Any]:
        return await paginate(db, Student, conditions, query, _to_item)

    key = CacheKeys.list_key(COLLECTION, scope, query, {"classroomId": classroom_id})
    return await cache.get_or_load(key, _load)


async def get_student(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    student_id: UUID,
) -> Dict[str, Any]:
    async def _load() -> Optional[Dict[str, Any]]:
        obj = await db.get(Student, student_id)
        return _to_item(obj) if obj else None

    data = await cache.get_or_load(CacheKeys.entity_key(COLLECTION, student_id), _load, cache.entity_ttl)
    if data is None:
        raise NotFound("Student not found")
    ensure_record_scope(identity, UUID(data["schoolId"]))
    return data


async def update_student(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    student_id: UUID,
    payload: StudentUpdate,
) -> StudentResponse:
    obj = await _get_student_or_404(db, student_id)
    ensure_record_scope(identity, obj.school_id)
    ensure_payload_scope(identity, payload.school_id)
    if payload.school_id is not None and payload.school_id != obj.school_id:
        raise ValidationFailed("Validation failed", details=["schoolId cannot be changed"])

    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes:
        obj.name = changes["name"].strip()
    if "age" in changes:
        obj.age = changes["age"]
    if "enrollment_date" in changes:
        obj.enrollment_date = changes["enrollment_date"]
    if "profile" in changes:
        obj.profile = payload.profile.model_dump(exclude_none=True) if payload.profile else None
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION, obj.school_id, student_id)
    return _student_to_response(obj)


async def enroll_student(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    student_id: UUID,
    payload: EnrollRequest,
) -> StudentResponse:
    """Move a student into a classroom of their own school, subject to its capacity."""
    obj = await _get_student_or_404(db, student_id)
    ensure_record_scope(identity, obj.school_id)
    if obj.classroom_id == payload.classroom_id:
        return _student_to_response(obj)

    classroom = await _lock_classroom(db, obj.school_id, payload.classroom_id)
    await _claim_seat(db, student_id, classroom)
    await db.commit()
    await db.refresh(obj)
    await cache.invalidate(COLLECTION, obj.school_id, student_id)
    logger.info("Enrolled student %s in classroom %s", student_id, payload.classroom_id)
    return _student_to_response(obj)


async def delete_student(
    db: AsyncSession,
    cache: ResponseCache,
    identity: IdentityContext,
    student_id: UUID,
) -> None:
    obj = await _get_student_or_404(db, student_id)
    ensure_record_scope(identity, obj.school_id)
    school_id = obj.school_id
    await db.delete(obj)
    await db.commit()
    await cache.invalidate(COLLECTION, school_id, student_id)
    logger.info("Deleted student %s", student_id)
