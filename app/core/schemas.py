from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.enums import SortDirection

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for API bodies: camelCase on the wire, snake_case in Python. Both spellings accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SortSpec(BaseModel):
    field: str
    direction: SortDirection = SortDirection.ASC

    def __str__(self) -> str:
        return f"{self.field}:{self.direction.value}"


class ListQuery(BaseModel):
    """Pagination and sort parameters of a list request, already validated."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort: SortSpec = SortSpec(field="name")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginatedResponse(CamelModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int


class MessageResponse(CamelModel):
    message: str


def error_body(code: int, message: str, details: Optional[List[Any]] = None) -> Dict[str, Any]:
    """Wire shape shared by every error response."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}
