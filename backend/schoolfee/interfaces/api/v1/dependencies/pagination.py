from fastapi import Query

from schoolfee.interfaces.api.v1.schemas.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_SEARCH_LENGTH,
    PaginationParams,
)


def get_pagination_params(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(default=None, max_length=MAX_SEARCH_LENGTH, description="Name, admission or receipt"),
) -> PaginationParams:
    # Blank search terms list everything.
    term = (search or "").strip()
    return PaginationParams(offset=offset, limit=limit, search=term or None)
