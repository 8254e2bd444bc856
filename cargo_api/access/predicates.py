"""
Tagged filter objects and the AND-of-ORs composer.

Each filter is a small frozen dataclass describing *what* to match; ``to_clause``
turns it into a SQLAlchemy expression in which every caller value is a bound
parameter. ``compose`` ANDs the clauses together:

    compose([
        AnyOf((Consignment.from_branch_id, Consignment.to_branch_id), branch_id),
        DateRange(Consignment.booking_date, from_date, to_date),
        Search((Consignment.cn_number, Consignment.consignor_name), "ravi"),
    ])

Optional filters whose value is missing (``None`` or empty text) drop out, so
request parameters can be passed straight through. ``MatchNothing`` anywhere
makes the whole conjunction false.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, Union

from sqlalchemy import and_, false, or_, true
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.elements import ColumnElement

_LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class Eq:
    column: InstrumentedAttribute
    value: Any


@dataclass(frozen=True)
class In:
    column: InstrumentedAttribute
    values: Sequence[Any] | None


@dataclass(frozen=True)
class DateRange:
    """Inclusive on both ends; either bound may be open."""

    column: InstrumentedAttribute
    start: date | None = None
    end: date | None = None


@dataclass(frozen=True)
class Search:
    """Case-insensitive partial match of `text` against any of `columns`."""

    columns: Sequence[InstrumentedAttribute]
    text: str | None


@dataclass(frozen=True)
class AnyOf:
    """`value` equals at least one of `columns`. A missing value matches nothing."""

    columns: Sequence[InstrumentedAttribute]
    value: Any


@dataclass(frozen=True)
class IsNull:
    column: InstrumentedAttribute


@dataclass(frozen=True)
class Unrestricted:
    pass


@dataclass(frozen=True)
class MatchNothing:
    reason: str = ""


Filter = Union[Eq, In, DateRange, Search, AnyOf, IsNull, Unrestricted, MatchNothing]


def escape_like(text: str) -> str:
    return (
        text.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def to_clause(f: Filter) -> ColumnElement[bool] | None:
    """SQL expression for one filter, or None when the filter does not restrict anything."""

    if isinstance(f, Unrestricted):
        return None
    if isinstance(f, MatchNothing):
        return false()
    if isinstance(f, Eq):
        if f.value is None:
            return None
        return f.column == f.value
    if isinstance(f, In):
        if f.values is None:
            return None
        if len(f.values) == 0:
            return false()
        return f.column.in_(list(f.values))
    if isinstance(f, IsNull):
        return f.column.is_(None)
    if isinstance(f, DateRange):
        bounds = []
        if f.start is not None:
            bounds.append(f.column >= f.start)
        if f.end is not None:
            bounds.append(f.column <= f.end)
        return and_(*bounds) if bounds else None
    if isinstance(f, Search):
        text = (f.text or "").strip()
        if not text or not f.columns:
            return None
        pattern = f"%{escape_like(text)}%"
        return or_(*(col.ilike(pattern, escape=_LIKE_ESCAPE) for col in f.columns))
    if isinstance(f, AnyOf):
        if f.value is None or not f.columns:
            return false()
        return or_(*(col == f.value for col in f.columns))
    raise TypeError(f"Unsupported filter: {f!r}")


def compose(filters: Iterable[Filter]) -> ColumnElement[bool]:
    clauses: list[ColumnElement[bool]] = []
    for f in filters:
        if isinstance(f, MatchNothing):
            return false()
        clause = to_clause(f)
        if clause is not None:
            clauses.append(clause)
    if not clauses:
        return true()
    return and_(*clauses)


def matches(f: Filter, record: object) -> bool:
    """
    Evaluate a visibility filter against an already loaded row.

    Only the filters the visibility policy produces are supported here.
    """

    if isinstance(f, Unrestricted):
        return True
    if isinstance(f, MatchNothing):
        return False
    if isinstance(f, AnyOf):
        if f.value is None:
            return False
        return any(getattr(record, col.key) == f.value for col in f.columns)
    if isinstance(f, Eq):
        return f.value is None or getattr(record, f.column.key) == f.value
    raise TypeError(f"Cannot evaluate {type(f).__name__} in memory")
