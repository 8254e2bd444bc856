from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from cargo_api.access import ScopedQuery, TenantContext
from cargo_api.db.base import utcnow
from cargo_api.models.shipping import Consignment
from cargo_api.models.tenancy import Branch

logger = logging.getLogger(__name__)

_NOT_CANCELLED = Consignment.status != "cancelled"


def _scope(ctx: TenantContext):
    """Same visibility as the consignment list: origin, destination or current branch."""

    return ScopedQuery(Consignment, ctx, "consignment").predicate()


def _count(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _revenue(condition):
    return func.coalesce(func.sum(case((and_(condition, _NOT_CANCELLED), Consignment.total_amount), else_=0)), 0)


def stats(db: Session, ctx: TenantContext, today: date | None = None) -> dict:
    today = today or utcnow().date()
    month_start = today.replace(day=1)
    day_start = datetime.combine(today, time.min)

    booked_today = Consignment.booking_date == today
    booked_this_month = Consignment.booking_date >= month_start

    row = db.execute(
        select(
            _count(booked_today),
            _revenue(booked_today),
            _count(booked_this_month),
            _revenue(booked_this_month),
            _count(Consignment.status == "in_transit"),
            _count(Consignment.status.in_(("reached", "out_for_delivery"))),
            _count(and_(Consignment.status == "delivered", Consignment.updated_at >= day_start)),
            _count(and_(Consignment.status.in_(("booked", "picked")), Consignment.ogpl_id.is_(None))),
        ).where(_scope(ctx))
    ).one()

    breakdown = db.execute(
        select(Consignment.status, func.count()).where(_scope(ctx)).group_by(Consignment.status)
    ).all()

    return {
        "today_bookings": int(row[0]),
        "today_revenue": float(row[1]),
        "month_bookings": int(row[2]),
        "month_revenue": float(row[3]),
        "in_transit": int(row[4]),
        "pending_delivery": int(row[5]),
        "delivered_today": int(row[6]),
        "pending_ogpl": int(row[7]),
        "status_breakdown": {status: int(n) for status, n in breakdown},
    }


def recent_bookings(db: Session, ctx: TenantContext, limit: int = 10) -> list[Consignment]:
    query = ScopedQuery(Consignment, ctx, "consignment").order_by(Consignment.created_at.desc())
    return query.all(db, limit=limit)


def revenue_chart(db: Session, ctx: TenantContext, days: int = 7, today: date | None = None) -> list[dict]:
    """One point per day, oldest first; days without bookings are reported as zero."""

    today = today or utcnow().date()
    start = today - timedelta(days=days - 1)

    rows = db.execute(
        select(
            Consignment.booking_date,
            func.count(),
            func.coalesce(func.sum(case((_NOT_CANCELLED, Consignment.total_amount), else_=0)), 0),
        )
        .where(_scope(ctx), Consignment.booking_date >= start, Consignment.booking_date <= today)
        .group_by(Consignment.booking_date)
    ).all()
    by_day = {booking_date: (int(n), float(revenue)) for booking_date, n, revenue in rows}

    points = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        bookings, revenue = by_day.get(day, (0, 0.0))
        points.append({"date": day, "bookings": bookings, "revenue": revenue})
    return points


def branch_summary(db: Session, ctx: TenantContext) -> list[dict]:
    """Per-branch totals for tenant administrators. Bookings are attributed to the origin branch."""

    branches = ScopedQuery(Branch, ctx, "branch").order_by(Branch.branch_code.asc()).all(db)

    origin = dict(
        (branch_id, (int(n), float(revenue), int(in_transit)))
        for branch_id, n, revenue, in_transit in db.execute(
            select(
                Consignment.from_branch_id,
                func.count(),
                func.coalesce(func.sum(case((_NOT_CANCELLED, Consignment.total_amount), else_=0)), 0),
                _count(Consignment.status == "in_transit"),
            )
            .where(_scope(ctx))
            .group_by(Consignment.from_branch_id)
        ).all()
    )
    delivered = dict(
        (branch_id, int(n))
        for branch_id, n in db.execute(
            select(Consignment.to_branch_id, func.count())
            .where(_scope(ctx), Consignment.status == "delivered")
            .group_by(Consignment.to_branch_id)
        ).all()
    )

    summary = []
    for branch in branches:
        bookings, revenue, in_transit = origin.get(branch.id, (0, 0.0, 0))
        summary.append(
            {
                "branch_id": branch.id,
                "branch_code": branch.branch_code,
                "branch_name": branch.name,
                "city": branch.city,
                "bookings": bookings,
                "revenue": revenue,
                "in_transit": in_transit,
                "delivered": delivered.get(branch.id, 0),
            }
        )
    logger.debug("Branch summary tenant=%s branches=%s", ctx.tenant_id, len(summary))
    return summary
