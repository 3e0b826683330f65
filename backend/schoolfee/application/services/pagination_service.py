from math import ceil
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta

LIKE_ESCAPE = "\\"


def _like_pattern(term: str) -> str:
    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def apply_search_filter(query: Select, search: str | None, search_columns: list[Any]) -> Select:
    term = (search or "").strip()
    if not term or not search_columns:
        return query
    pattern = _like_pattern(term)
    return query.where(or_(*(column.ilike(pattern, escape=LIKE_ESCAPE) for column in search_columns)))


def build_pagination_meta(*, offset: int, limit: int, total: int, filtered_total: int) -> PaginationMeta:
    has_next = (offset + limit) < filtered_total
    return PaginationMeta(
        offset=offset,
        limit=limit,
        total=total,
        filtered_total=filtered_total,
        total_pages=ceil(total / limit) if total else 0,
        filtered_total_pages=ceil(filtered_total / limit) if filtered_total else 0,
        current_page=(offset // limit) + 1 if filtered_total else 0,
        has_next=has_next,
        has_prev=offset > 0,
        next_offset=offset + limit if has_next else None,
    )


def _count(db: Session, query: Select) -> int:
    return db.execute(select(func.count()).select_from(query.order_by(None).subquery())).scalar_one()


def paginate_scalars(
    db: Session,
    base_query: Select,
    *,
    offset: int,
    limit: int,
    search: str | None = None,
    search_columns: list[Any] | None = None,
) -> tuple[list[Any], PaginationMeta]:
    """Run `base_query` with an optional ilike search and return one page.

    `base_query` must already be tenant-scoped; `total` counts it before the
    search so clients can tell an empty search from an empty school.
    Wildcards typed by the user match literally.
    """
    filtered_query = apply_search_filter(base_query, search, search_columns or [])
    total = _count(db, base_query)
    filtered_total = total if filtered_query is base_query else _count(db, filtered_query)

    items = list(db.execute(filtered_query.offset(offset).limit(limit)).scalars().all())
    meta = build_pagination_meta(offset=offset, limit=limit, total=total, filtered_total=filtered_total)
    return items, meta
