"""
Scoped Query Builder.

A ``ScopedQuery`` always starts from two predicates nobody can forget: the
caller's tenant and the branch-visibility filter for the record kind. Caller
filters are added with ``where``; the same predicate then drives both the total
count and the page of rows, so pagination metadata always agrees with the data.

Ordering is deterministic: the requested sort keys plus the primary key as a
final tiebreaker.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from cargo_api.access import policy
from cargo_api.access.context import TenantContext
from cargo_api.access.predicates import Filter, compose
from cargo_api.errors import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(page: int | None, limit: int | None, *, default_limit: int, max_limit: int) -> PageParams:
    page = 1 if page is None else page
    limit = default_limit if limit is None else limit
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    return PageParams(page=page, limit=limit)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "totalPages": self.total_pages}


class ScopedQuery(Generic[T]):
    def __init__(self, model: type[T], ctx: TenantContext, record_kind: str) -> None:
        self.model = model
        self.ctx = ctx
        self.record_kind = record_kind
        self._filters: list[Filter] = [policy.filter_for(ctx, record_kind)]
        self._order: list[Any] = []

    def where(self, *filters: Filter) -> ScopedQuery[T]:
        self._filters.extend(filters)
        return self

    def order_by(self, *columns: Any) -> ScopedQuery[T]:
        self._order.extend(columns)
        return self

    def predicate(self) -> ColumnElement[bool]:
        return and_(self.model.tenant_id == self.ctx.tenant_id, compose(self._filters))

    def statement(self) -> Select:
        return select(self.model).where(self.predicate()).order_by(*self._order, self.model.id.asc())

    def count(self, db: Session) -> int:
        stmt = select(func.count()).select_from(self.model).where(self.predicate())
        return int(db.scalar(stmt) or 0)

    def all(self, db: Session, limit: int | None = None) -> list[T]:
        stmt = self.statement()
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.scalars(stmt).unique().all())

    def first(self, db: Session) -> T | None:
        return db.scalars(self.statement().limit(1)).unique().first()

    def page(self, db: Session, params: PageParams) -> Page[T]:
        total = self.count(db)
        stmt = self.statement().limit(params.limit).offset(params.offset)
        items = list(db.scalars(stmt).unique().all())
        logger.debug(
            "Scoped page kind=%s tenant=%s role=%s page=%s limit=%s total=%s",
            self.record_kind,
            self.ctx.tenant_id,
            self.ctx.role,
            params.page,
            params.limit,
            total,
        )
        return Page(items=items, total=total, page=params.page, limit=params.limit)
