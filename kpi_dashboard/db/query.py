"""Declarative filter/sort/paginate specs shared by list and count queries.

Each listing endpoint describes its entity once as a :class:`QuerySpec`. The
page query and the count query are both derived from :meth:`QuerySpec.filtered`
so the predicates applied to the rows and to the total cannot diverge.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence

from sqlalchemy import ColumnElement, Select, func, or_, select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

Predicate = Callable[[Any], ColumnElement[bool]]

SORT_ASC = "ASC"
SORT_DESC = "DESC"


def is_present(value: Any) -> bool:
    """Blank strings count as absent so empty query params never filter."""

    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def normalize_sort_order(sort_order: str | None) -> str:
    return SORT_ASC if (sort_order or "").strip().upper() == SORT_ASC else SORT_DESC


def day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_after(value: date) -> datetime:
    """Exclusive upper bound covering the whole of ``value``."""

    return day_start(value + timedelta(days=1))


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def as_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
            "currentPage": self.page,
            "itemsPerPage": self.limit,
        }


@dataclass(frozen=True)
class QuerySpec:
    """Filter list, HAVING list, search columns and sort allow-list for one entity."""

    statement: Select
    sort_fields: Mapping[str, ColumnElement[Any]]
    default_sort: str
    filters: Mapping[str, Predicate] = field(default_factory=dict)
    having: Mapping[str, Predicate] = field(default_factory=dict)
    search_columns: Sequence[ColumnElement[Any]] = ()
    tiebreakers: Sequence[ColumnElement[Any]] = ()

    def __post_init__(self) -> None:
        if self.default_sort not in self.sort_fields:
            raise ValueError(f"default sort {self.default_sort!r} is not in the allow-list")

    def where_clauses(self, params: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        search = params.get("search")
        if self.search_columns and is_present(search):
            term = f"%{str(search).strip()}%"
            clauses.append(or_(*(column.ilike(term) for column in self.search_columns)))
        for name, predicate in self.filters.items():
            value = params.get(name)
            if is_present(value):
                clauses.append(predicate(value))
        return clauses

    def having_clauses(self, params: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        return [predicate(params[name]) for name, predicate in self.having.items() if is_present(params.get(name))]

    def filtered(self, params: Mapping[str, Any]) -> Select:
        stmt = self.statement
        where = self.where_clauses(params)
        if where:
            stmt = stmt.where(*where)
        having = self.having_clauses(params)
        if having:
            stmt = stmt.having(*having)
        return stmt

    def resolve_sort(self, sort_by: str | None) -> str:
        """Unknown sort fields fall back to the default instead of erroring."""

        return sort_by if sort_by in self.sort_fields else self.default_sort

    def ordering(self, sort_by: str | None, sort_order: str | None) -> list[ColumnElement[Any]]:
        column = self.sort_fields[self.resolve_sort(sort_by)]
        direction = normalize_sort_order(sort_order)
        primary = column.asc() if direction == SORT_ASC else column.desc()
        return [primary, *self.tiebreakers]

    def page_query(
        self,
        params: Mapping[str, Any],
        *,
        limit: int,
        offset: int,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> Select:
        return (
            self.filtered(params)
            .order_by(*self.ordering(sort_by, sort_order))
            .limit(limit)
            .offset(offset)
        )

    def count_query(self, params: Mapping[str, Any]) -> Select:
        return select(func.count()).select_from(self.filtered(params).order_by(None).subquery())


async def fetch_page(
    session: AsyncSession,
    spec: QuerySpec,
    params: Mapping[str, Any],
    *,
    page: int,
    limit: int,
    sort_by: str | None = None,
    sort_order: str | None = None,
    offset: int | None = None,
) -> tuple[Sequence[Row[Any]], Pagination]:
    """Run the page and count queries for ``spec`` and return rows plus metadata.

    ``offset`` overrides the page-derived offset for callers that page by row
    offset; ``page`` is then only reported back.
    """

    if offset is None:
        offset = Pagination(page=page, limit=limit, total=0).offset
    stmt = spec.page_query(
        params,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    rows = (await session.execute(stmt)).all()
    total = (await session.execute(spec.count_query(params))).scalar_one()
    return rows, Pagination(page=page, limit=limit, total=int(total or 0))


__all__ = [
    "Pagination",
    "QuerySpec",
    "SORT_ASC",
    "SORT_DESC",
    "day_after",
    "day_start",
    "fetch_page",
    "is_present",
    "normalize_sort_order",
]
