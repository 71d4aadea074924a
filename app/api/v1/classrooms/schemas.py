from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from app.core.schemas import CamelModel


def _unique_resources(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    cleaned = [r.strip() for r in v]
    if any(not r or len(r) > 50 for r in cleaned):
        raise ValueError("Each resource must be 1-50 characters")
    if len(set(cleaned)) != len(cleaned):
        raise ValueError("Resources must be unique")
    return cleaned


class ClassroomCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    capacity: int = Field(..., ge=1, le=1000)
    resources: List[str] = Field(default_factory=list)
    # Required for superadmin; schooladmin defaults to their own school
    school_id: Optional[UUID] = None

    @field_validator("resources")
    @classmethod
    def check_resources(cls, v: List[str]) -> List[str]:
        return _unique_resources(v)


class ClassroomUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    capacity: Optional[int] = Field(None, ge=1, le=1000)
    resources: Optional[List[str]] = None
    # Accepted only when it matches the current school
    school_id: Optional[UUID] = None

    @field_validator("resources")
    @classmethod
    def check_resources(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique_resources(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "ClassroomUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        for field in ("name", "capacity", "resources"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class ClassroomResponse(CamelModel):
    id: UUID
    school_id: UUID
    name: str
    capacity: int
    resources: List[str]
    created_at: datetime
    updated_at: datetime
