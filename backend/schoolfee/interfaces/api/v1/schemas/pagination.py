from pydantic import BaseModel, ConfigDict

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_SEARCH_LENGTH = 100


class PaginationParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    offset: int = 0
    limit: int = DEFAULT_PAGE_SIZE
    search: str | None = None


class PaginationMeta(BaseModel):
    """Page window over a tenant-scoped listing.

    `total` ignores the search term, `filtered_total` applies it.
    """

    offset: int
    limit: int
    total: int
    filtered_total: int
    total_pages: int
    filtered_total_pages: int
    current_page: int
    has_next: bool
    has_prev: bool
    next_offset: int | None = None
