"""
OGPL (outward goods pass list): one vehicle trip from an origin branch to a destination branch.

Lifecycle: created -> loading (consignments added) -> departed -> reached.
Each step moves the carried consignments along and appends their tracking events
in the same transaction as the OGPL update.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from cargo_api.access import AnyOf, Eq, Page, PageParams, ScopedQuery, TenantContext
from cargo_api.access.guard import get_visible_or_404
from cargo_api.access.policy import allows
from cargo_api.access.predicates import escape_like
from cargo_api.db.base import utcnow
from cargo_api.db.session import atomic
from cargo_api.errors import AuthorizationError, ValidationError
from cargo_api.models.shipping import Consignment, Ogpl
from cargo_api.models.tenancy import Branch
from cargo_api.schemas.shipping import OgplCreate
from cargo_api.services.consignments import OGPL_READY_STATUSES, active_branch, append_tracking

logger = logging.getLogger(__name__)


def next_ogpl_number(db: Session, ctx: TenantContext, branch: Branch, year: int) -> str:
    prefix = f"OGPL-{branch.branch_code}-{year}"
    last = db.scalar(
        select(Ogpl.ogpl_number)
        .where(
            Ogpl.tenant_id == ctx.tenant_id,
            Ogpl.ogpl_number.like(f"{escape_like(prefix)}%", escape="\\"),
        )
        .order_by(Ogpl.ogpl_number.desc())
        .limit(1)
    )
    sequence = int(last[-4:]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def create_ogpl(db: Session, ctx: TenantContext, data: OgplCreate) -> Ogpl:
    from_branch = active_branch(db, ctx, data.from_branch_id, "Invalid branch IDs")
    to_branch = active_branch(db, ctx, data.to_branch_id, "Invalid branch IDs")
    if from_branch.id == to_branch.id:
        raise ValidationError("From and to branches cannot be the same")
    if not ctx.is_privileged and from_branch.id != ctx.branch_id:
        raise AuthorizationError("You can only create OGPLs from your own branch")

    now = utcnow()
    with atomic(db):
        ogpl = Ogpl(
            tenant_id=ctx.tenant_id,
            ogpl_number=next_ogpl_number(db, ctx, from_branch, now.year),
            ogpl_date=now.date(),
            from_branch_id=from_branch.id,
            to_branch_id=to_branch.id,
            vehicle_number=data.vehicle_number.upper(),
            driver_name=data.driver_name,
            driver_phone=data.driver_phone,
            seal_number=data.seal_number,
            status="created",
            created_by=ctx.user_id,
        )
        db.add(ogpl)
        db.flush()

    logger.info("OGPL created number=%s tenant=%s", ogpl.ogpl_number, ctx.tenant_id)
    return ogpl


def list_ogpls(
    db: Session, ctx: TenantContext, params: PageParams, *, status: str | None = None, branch_id: str | None = None
) -> Page[Ogpl]:
    query = ScopedQuery(Ogpl, ctx, "ogpl").where(Eq(Ogpl.status, status))
    if branch_id:
        query.where(AnyOf((Ogpl.from_branch_id, Ogpl.to_branch_id), branch_id))
    return query.order_by(Ogpl.created_at.desc()).page(db, params)


def carried_consignments(db: Session, ctx: TenantContext, ogpl: Ogpl) -> list[Consignment]:
    query = ScopedQuery(Consignment, ctx, "consignment").where(Eq(Consignment.ogpl_id, ogpl.id))
    return query.order_by(Consignment.cn_number.asc()).all(db)


def locked_consignments(ctx: TenantContext, *criteria) -> Select:
    """Consignment rows locked for the transaction; the eager-loaded branch joins stay unlocked."""
    return select(Consignment).where(Consignment.tenant_id == ctx.tenant_id, *criteria).with_for_update(of=Consignment)


def _load_problem(ctx: TenantContext, ogpl: Ogpl, consignment_id: str, consignment: Consignment | None) -> str | None:
    if consignment is None or not allows(ctx, "consignment", consignment):
        return f"Consignment {consignment_id} not found"
    cn = consignment.cn_number
    if consignment.status not in OGPL_READY_STATUSES:
        return f"CN {cn} is not in booked or picked status"
    if consignment.ogpl_id is not None:
        return f"CN {cn} is already loaded on an OGPL"
    if consignment.current_branch_id != ogpl.from_branch_id:
        return f"CN {cn} is not at the OGPL origin branch"
    if consignment.to_branch_id != ogpl.to_branch_id:
        return f"CN {cn} is not bound for the OGPL destination branch"
    return None


def load_consignments(db: Session, ctx: TenantContext, ogpl_id: str, consignment_ids: list[str]) -> Ogpl:
    """
    Put consignments on an OGPL. All of them load or none does.

    Every id is checked first; the collected problems are returned as one 400 with
    a per-consignment `errors` list.
    """

    ids = list(dict.fromkeys(consignment_ids))

    with atomic(db):
        ogpl = get_visible_or_404(db, ctx, "ogpl", Ogpl.id == ogpl_id, label="OGPL", for_update=True)
        if ogpl.status not in ("created", "loading"):
            raise ValidationError("OGPL cannot be modified in current status")

        found = {
            c.id: c
            for c in db.scalars(locked_consignments(ctx, Consignment.id.in_(ids))).unique()
        }

        errors = []
        for consignment_id in ids:
            problem = _load_problem(ctx, ogpl, consignment_id, found.get(consignment_id))
            if problem:
                errors.append({"consignment_id": consignment_id, "error": problem})
        if errors:
            raise ValidationError("Some consignments cannot be loaded", errors=errors)

        packages = 0
        weight = Decimal("0")
        for consignment_id in ids:
            consignment = found[consignment_id]
            consignment.ogpl_id = ogpl.id
            consignment.status = "picked"
            consignment.updated_at = utcnow()
            packages += consignment.no_of_packages
            weight += Decimal(str(consignment.charged_weight or consignment.actual_weight or 0))
            append_tracking(
                db,
                ctx,
                consignment,
                "picked",
                location=f"Loaded in OGPL {ogpl.ogpl_number}",
                branch_id=ogpl.from_branch_id,
            )

        ogpl.total_consignments += len(ids)
        ogpl.total_packages += packages
        ogpl.total_weight = Decimal(str(ogpl.total_weight or 0)) + weight
        ogpl.status = "loading"
        db.flush()

    logger.info("OGPL loaded number=%s added=%s", ogpl.ogpl_number, len(ids))
    return ogpl


def depart(db: Session, ctx: TenantContext, ogpl_id: str, remarks: str | None = None) -> Ogpl:
    with atomic(db):
        ogpl = get_visible_or_404(db, ctx, "ogpl", Ogpl.id == ogpl_id, label="OGPL", for_update=True)
        if ogpl.status != "loading":
            raise ValidationError("OGPL must be in loading status to depart")
        if ogpl.total_consignments == 0:
            raise ValidationError("OGPL has no consignments loaded")

        ogpl.status = "departed"
        ogpl.departure_time = utcnow()
        moved = _move_carried(
            db,
            ctx,
            ogpl,
            from_statuses=OGPL_READY_STATUSES,
            to_status="in_transit",
            location=f"Departed in OGPL {ogpl.ogpl_number} to {ogpl.to_branch_name or 'destination'}",
            branch_id=ogpl.from_branch_id,
            remarks=remarks,
        )

    logger.info("OGPL departed number=%s consignments=%s", ogpl.ogpl_number, moved)
    return ogpl


def arrive(db: Session, ctx: TenantContext, ogpl_id: str, remarks: str | None = None) -> Ogpl:
    with atomic(db):
        ogpl = get_visible_or_404(db, ctx, "ogpl", Ogpl.id == ogpl_id, label="OGPL", for_update=True)
        if ogpl.status != "departed":
            raise ValidationError("OGPL must be departed before it can arrive")

        ogpl.status = "reached"
        ogpl.arrival_time = utcnow()
        moved = _move_carried(
            db,
            ctx,
            ogpl,
            from_statuses=("in_transit",),
            to_status="reached",
            location=f"Arrived at {ogpl.to_branch_name or 'destination'}",
            branch_id=ogpl.to_branch_id,
            remarks=remarks,
            current_branch_id=ogpl.to_branch_id,
        )

    logger.info("OGPL reached number=%s consignments=%s", ogpl.ogpl_number, moved)
    return ogpl


def _move_carried(
    db: Session,
    ctx: TenantContext,
    ogpl: Ogpl,
    *,
    from_statuses: tuple[str, ...],
    to_status: str,
    location: str,
    branch_id: str,
    remarks: str | None,
    current_branch_id: str | None = None,
) -> int:
    stmt = locked_consignments(ctx, Consignment.ogpl_id == ogpl.id, Consignment.status.in_(from_statuses))
    consignments = list(db.scalars(stmt).unique().all())
    for consignment in consignments:
        consignment.status = to_status
        if current_branch_id is not None:
            consignment.current_branch_id = current_branch_id
        consignment.updated_at = utcnow()
        append_tracking(db, ctx, consignment, to_status, location=location, branch_id=branch_id, remarks=remarks)
    db.flush()
    return len(consignments)
