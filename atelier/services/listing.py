from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_SORT_FIELD = "created_at"

SORT_ASC = "asc"
SORT_DESC = "desc"

_LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class ListParams:
    # Validated, bounded list parameters; safe to bind into a query as-is.
    page: int
    limit: int
    offset: int
    sort_field: str
    sort_order: str
    search_term: str | None


@dataclass(frozen=True)
class PageMeta:
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


def _parse_positive_int(raw: Any) -> int | None:
    # Accept ints and integer strings only; bools, floats and junk fall through to defaults.
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            return None
    return value if value > 0 else None


def normalize_page(raw: Any) -> int:
    return _parse_positive_int(raw) or DEFAULT_PAGE


def normalize_limit(raw: Any) -> int:
    value = _parse_positive_int(raw)
    if value is None:
        return DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


def normalize_sort_field(raw: Any, allowed: Iterable[str], default: str = DEFAULT_SORT_FIELD) -> str:
    # Unknown fields never reach ORDER BY; they silently resolve to the default.
    if isinstance(raw, str) and raw in set(allowed):
        return raw
    return default


def normalize_sort_order(raw: Any) -> str:
    return SORT_ASC if raw == SORT_ASC else SORT_DESC


def normalize_search(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    term = raw.strip()
    return term or None


def normalize(
    *,
    page: Any = None,
    limit: Any = None,
    sort: Any = None,
    order: Any = None,
    search: Any = None,
    allowed_sort_fields: Iterable[str] = (DEFAULT_SORT_FIELD,),
    default_sort: str = DEFAULT_SORT_FIELD,
) -> ListParams:
    """Turn raw query parameters into bounded list parameters.

    Never raises: every malformed input falls back to its default so a list
    endpoint always answers with a usable page.
    """
    resolved_page = normalize_page(page)
    resolved_limit = normalize_limit(limit)
    return ListParams(
        page=resolved_page,
        limit=resolved_limit,
        offset=(resolved_page - 1) * resolved_limit,
        sort_field=normalize_sort_field(sort, allowed_sort_fields, default_sort),
        sort_order=normalize_sort_order(order),
        search_term=normalize_search(search),
    )


def page_meta(page: int, limit: int, total: int) -> PageMeta:
    # Empty collections report zero pages and no navigation in either direction.
    if total <= 0:
        return PageMeta(page=page, limit=limit, total=0, pages=0, has_next=False, has_prev=False)
    pages = math.ceil(total / limit)
    return PageMeta(
        page=page,
        limit=limit,
        total=total,
        pages=pages,
        has_next=page < pages,
        has_prev=page > 1,
    )


def escape_like(term: str) -> str:
    # Treat LIKE wildcards in user input as literals.
    return (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", f"{_LIKE_ESCAPE}%")
        .replace("_", f"{_LIKE_ESCAPE}_")
    )


def search_clause(
    columns: Sequence[ColumnElement[Any]], term: str | None
) -> ColumnElement[bool] | None:
    # Case-insensitive substring match; the pattern is a bound parameter, never interpolated SQL.
    if not term or not columns:
        return None
    pattern = f"%{escape_like(term.lower())}%"
    clauses = [func.lower(column).like(pattern, escape=_LIKE_ESCAPE) for column in columns]
    return clauses[0] if len(clauses) == 1 else or_(*clauses)


def order_clauses(
    params: ListParams,
    sort_columns: Mapping[str, ColumnElement[Any]],
    tiebreaker: ColumnElement[Any] | None = None,
) -> list[ColumnElement[Any]]:
    column = sort_columns[params.sort_field]
    clauses = [column.asc() if params.sort_order == SORT_ASC else column.desc()]
    if tiebreaker is not None:
        # Keep page boundaries stable when sort values collide.
        clauses.append(tiebreaker.asc() if params.sort_order == SORT_ASC else tiebreaker.desc())
    return clauses


async def paginate(
    session: AsyncSession,
    stmt: Select,
    *,
    params: ListParams,
    sort_columns: Mapping[str, ColumnElement[Any]],
    search_columns: Sequence[ColumnElement[Any]] = (),
    tiebreaker: ColumnElement[Any] | None = None,
) -> tuple[list[Any], PageMeta]:
    """Count, then fetch one page of ``stmt``.

    Returns raw rows (``Row`` objects) so callers can select entities together
    with computed columns. The page query is skipped when the requested page
    starts past the last row, so an oversized page never reaches the driver.
    """
    clause = search_clause(search_columns, params.search_term)
    if clause is not None:
        stmt = stmt.where(clause)

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = int((await session.execute(count_stmt)).scalar_one() or 0)
    meta = page_meta(params.page, params.limit, total)
    if params.offset >= total:
        return [], meta

    page_stmt = (
        stmt.order_by(*order_clauses(params, sort_columns, tiebreaker))
        .limit(params.limit)
        .offset(params.offset)
    )
    result = await session.execute(page_stmt)
    return list(result.all()), meta

