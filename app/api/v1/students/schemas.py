from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from app.core.schemas import CamelModel

HTTP_URI_PATTERN = r"^https?://\S+$"


class StudentProfile(CamelModel):
    photo: Optional[str] = Field(None, pattern=HTTP_URI_PATTERN, max_length=2048)
    bio: Optional[str] = Field(None, max_length=500)


class StudentCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    age: Optional[int] = Field(None, ge=5, le=25)
    # Required for superadmin; schooladmin defaults to their own school
    school_id: Optional[UUID] = None
    # Enrolls the new student right away (same checks as PUT /{id}/enroll)
    classroom_id: Optional[UUID] = None
    enrollment_date: Optional[datetime] = None
    profile: Optional[StudentProfile] = None


class StudentUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    age: Optional[int] = Field(None, ge=5, le=25)
    enrollment_date: Optional[datetime] = None
    profile: Optional[StudentProfile] = None
    # Accepted only when it matches the current school
    school_id: Optional[UUID] = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "StudentUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be null")
        return self


class EnrollRequest(CamelModel):
    classroom_id: UUID


class StudentResponse(CamelModel):
    id: UUID
    school_id: UUID
    classroom_id: Optional[UUID] = None
    name: str
    age: Optional[int] = None
    enrollment_date: Optional[datetime] = None
    profile: Optional[StudentProfile] = None
    created_at: datetime
    updated_at: datetime
