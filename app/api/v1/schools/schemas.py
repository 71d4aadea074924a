from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field, model_validator

from app.core.schemas import CamelModel

HTTP_URI_PATTERN = r"^https?://\S+$"
PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"


class SchoolProfile(CamelModel):
    logo: Optional[str] = Field(None, pattern=HTTP_URI_PATTERN, max_length=2048)
    description: Optional[str] = Field(None, max_length=1000)


class SchoolCreate(CamelModel):
    name: str = Field(..., min_length=3, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    contact_email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    profile: Optional[SchoolProfile] = None


class SchoolUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    contact_email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    profile: Optional[SchoolProfile] = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "SchoolUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be null")
        return self


class SchoolResponse(CamelModel):
    id: UUID
    name: str
    address: Optional[str] = None
    contact_email: Optional[str] = None
    phone: Optional[str] = None
    profile: Optional[SchoolProfile] = None
    created_at: datetime
    updated_at: datetime
