"""Query-string pagination (page, limit, sort=field:asc|desc) and the paginated store query shared by every list route."""

from typing import Any, Callable, Dict, List, Sequence

from fastapi import Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import SortDirection
from app.core.exceptions import ValidationFailed
from app.core.schemas import ListQuery, SortSpec

MAX_PAGE_SIZE = 100


def parse_sort(raw: str, allowed_fields: Dict[str, str]) -> SortSpec:
    """Parse ``field[:direction]`` into a SortSpec keyed by model attribute name.

    ``allowed_fields`` maps the public (camelCase) field name to the ORM attribute.
    """
    field, _, direction = raw.partition(":")
    field = field.strip()
    direction = (direction or SortDirection.ASC.value).strip().lower()
    errors = []
    if field not in allowed_fields:
        errors.append(f"sort field must be one of: {', '.join(sorted(allowed_fields))}")
    if direction not in {d.value for d in SortDirection}:
        errors.append("sort direction must be 'asc' or 'desc'")
    if errors:
        raise ValidationFailed("Validation failed", details=errors)
    return SortSpec(field=allowed_fields[field], direction=SortDirection(direction))


def list_query_params(
    allowed_sort_fields: Dict[str, str],
    default_sort: str = "name:asc",
) -> Callable[..., ListQuery]:
    """Dependency factory producing a validated ListQuery for a collection.

    Example:
        query: ListQuery = Depends(list_query_params(CLASSROOM_SORT_FIELDS))
    """

    def _dependency(
        page: int = Query(1, ge=1, description="1-based page number"),
        limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
        sort: str = Query(default_sort, description="Sort as field:asc|desc"),
    ) -> ListQuery:
        return ListQuery(page=page, limit=limit, sort=parse_sort(sort, allowed_sort_fields))

    return _dependency


async def paginate(
    db: AsyncSession,
    model,
    conditions: Sequence[Any],
    query: ListQuery,
    to_item: Callable[[Any], Dict[str, Any]],
) -> Dict[str, Any]:
    """Run a filtered, sorted, paginated select and return ``{items, total, page, limit}``.

    Items are JSON-ready dicts so the result can be cached as is.
    """
    sort_column = getattr(model, query.sort.field)
    order = sort_column.desc() if query.sort.direction == SortDirection.DESC else sort_column.asc()

    stmt = select(model).where(*conditions).order_by(order, model.id).offset(query.offset).limit(query.limit)
    rows = (await db.execute(stmt)).scalars().all()

    total = (await db.execute(select(func.count()).select_from(model).where(*conditions))).scalar_one()

    items: List[Dict[str, Any]] = [to_item(row) for row in rows]
    return {"items": items, "total": total, "page": query.page, "limit": query.limit}
