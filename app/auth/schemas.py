import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.enums import UserRole
from app.core.schemas import CamelModel

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8, max_length=100)
    role: UserRole
    school_id: Optional[UUID] = None

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        if not PASSWORD_PATTERN.match(v):
            raise ValueError("Password must include uppercase, lowercase, number, and special char")
        return v

    @model_validator(mode="after")
    def school_matches_role(self) -> "RegisterRequest":
        if self.role == UserRole.SCHOOLADMIN and self.school_id is None:
            raise ValueError("schoolId is required for schooladmin")
        if self.role == UserRole.SUPERADMIN and self.school_id is not None:
            raise ValueError("schoolId is not allowed for superadmin")
        return self


class RegisterResponse(CamelModel):
    user_id: UUID
    username: str
    role: UserRole
    school_id: Optional[UUID] = None


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserInfo(CamelModel):
    id: UUID
    role: UserRole
    school_id: Optional[UUID] = None


class LoginResponse(CamelModel):
    token: str
    refresh_token: str
    user: UserInfo


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(CamelModel):
    token: str


class IdentityContext(BaseModel):
    """Request-scoped identity produced by the authorization guard and passed to every manager call."""

    user_id: UUID
    role: UserRole
    school_id: Optional[UUID] = None
    token: str
    expires_at: datetime

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN
