"""
Consignment booking, listing and status transitions.

Every read goes through the scoped query builder or the record-level guard; every
compound write (consignment row + tracking event) runs inside ``atomic(db)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cargo_api.access import AnyOf, DateRange, Eq, In, IsNull, Page, PageParams, ScopedQuery, Search, TenantContext
from cargo_api.access.guard import get_visible_or_404
from cargo_api.access.predicates import escape_like
from cargo_api.db.base import utcnow
from cargo_api.db.session import atomic
from cargo_api.errors import AuthorizationError, DependencyFailure, ValidationError
from cargo_api.models.shipping import CONSIGNMENT_STATUSES, Consignment, Customer, TrackingEvent
from cargo_api.models.tenancy import Branch
from cargo_api.schemas.shipping import ConsignmentCreate, ConsignmentDetailOut, TrackingEventOut
from cargo_api.services import notifications
from cargo_api.services.notifications import SmsSender

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")
_CN_RETRIES = 3

# Statuses worth an SMS; the consignee hears about the last mile, the consignor about the rest.
NOTIFY_STATUSES = frozenset({"picked", "in_transit", "reached", "out_for_delivery", "delivered"})
CONSIGNEE_STATUSES = frozenset({"out_for_delivery", "delivered"})
OGPL_READY_STATUSES = ("booked", "picked")

CHARGE_FIELDS = (
    "freight_amount",
    "hamali_charges",
    "door_delivery_charges",
    "loading_charges",
    "unloading_charges",
    "other_charges",
    "statistical_charges",
)
SEARCH_COLUMNS = (
    Consignment.cn_number,
    Consignment.consignor_name,
    Consignment.consignee_name,
    Consignment.consignor_phone,
    Consignment.consignee_phone,
)


@dataclass(frozen=True)
class GstBreakdown:
    subtotal: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal

    @property
    def tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax


def _money(value: object) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def calculate_gst(subtotal: Decimal, from_state: str | None, to_state: str | None, rate: float) -> GstBreakdown:
    """Intra-state bookings split GST into CGST + SGST; inter-state bookings pay IGST."""

    subtotal = _money(subtotal)
    tax = _money(subtotal * Decimal(str(rate)))
    if (from_state or "").strip().lower() == (to_state or "").strip().lower():
        half = _money(tax / 2)
        return GstBreakdown(subtotal=subtotal, cgst=half, sgst=tax - half, igst=Decimal("0.00"))
    return GstBreakdown(subtotal=subtotal, cgst=Decimal("0.00"), sgst=Decimal("0.00"), igst=tax)


def active_branch(db: Session, ctx: TenantContext, branch_id: str | None, message: str = "Invalid branch") -> Branch:
    """A branch of the caller's tenant that is still active; anything else is a 400."""

    if not branch_id:
        raise ValidationError(message)
    branch = db.scalars(
        select(Branch).where(Branch.id == branch_id, Branch.tenant_id == ctx.tenant_id, Branch.is_active.is_(True))
    ).first()
    if branch is None:
        raise ValidationError(message)
    return branch


def next_cn_number(db: Session, ctx: TenantContext, branch: Branch, year: int) -> str:
    """`<BRANCHCODE><YEAR><6-digit sequence>`; the sequence restarts per branch and year."""

    prefix = f"{branch.branch_code}{year}"
    last = db.scalar(
        select(Consignment.cn_number)
        .where(
            Consignment.tenant_id == ctx.tenant_id,
            Consignment.from_branch_id == branch.id,
            Consignment.cn_number.like(f"{escape_like(prefix)}%", escape="\\"),
        )
        .order_by(Consignment.cn_number.desc())
        .limit(1)
    )
    sequence = int(last[-6:]) + 1 if last else 1
    return f"{prefix}{sequence:06d}"


def append_tracking(
    db: Session,
    ctx: TenantContext,
    consignment: Consignment,
    status: str,
    *,
    location: str | None = None,
    branch_id: str | None = None,
    remarks: str | None = None,
) -> TrackingEvent:
    event = TrackingEvent(
        tenant_id=ctx.tenant_id,
        consignment_id=consignment.id,
        status=status,
        location=location,
        branch_id=branch_id,
        remarks=remarks,
        created_by=ctx.user_id,
    )
    db.add(event)
    db.flush()
    return event


def book_consignment(
    db: Session,
    ctx: TenantContext,
    data: ConsignmentCreate,
    *,
    gst_rate: float,
    sms: SmsSender | None = None,
) -> Consignment:
    from_branch = active_branch(db, ctx, data.from_branch_id, "Invalid branch IDs")
    to_branch = active_branch(db, ctx, data.to_branch_id, "Invalid branch IDs")
    if from_branch.id == to_branch.id:
        raise ValidationError("Origin and destination branches must differ")
    if not ctx.is_privileged and from_branch.id != ctx.branch_id:
        logger.info("Booking from foreign branch refused user=%s branch=%s", ctx.user_id, from_branch.id)
        raise AuthorizationError("You can only book consignments from your own branch")
    if data.consignor_id:
        get_visible_or_404(db, ctx, "customer", Customer.id == data.consignor_id, label="Customer")

    charges = {name: _money(getattr(data, name)) for name in CHARGE_FIELDS}
    gst = calculate_gst(sum(charges.values(), Decimal("0")), from_branch.state, to_branch.state, gst_rate)

    fields = data.model_dump(exclude={"from_branch_id", "to_branch_id", *CHARGE_FIELDS})
    for name in ("goods_value", "actual_weight", "charged_weight"):
        if fields[name] is not None:
            fields[name] = Decimal(str(fields[name]))
    if fields["charged_weight"] is None:
        fields["charged_weight"] = fields["actual_weight"]

    for attempt in range(1, _CN_RETRIES + 1):
        now = utcnow()
        try:
            with atomic(db):
                consignment = Consignment(
                    tenant_id=ctx.tenant_id,
                    cn_number=next_cn_number(db, ctx, from_branch, now.year),
                    booking_date=now.date(),
                    booking_time=now.time().replace(microsecond=0),
                    from_branch_id=from_branch.id,
                    to_branch_id=to_branch.id,
                    current_branch_id=from_branch.id,
                    gst_percentage=Decimal(str(gst_rate * 100)),
                    cgst=gst.cgst,
                    sgst=gst.sgst,
                    igst=gst.igst,
                    total_amount=gst.total,
                    status="booked",
                    created_by=ctx.user_id,
                    **charges,
                    **fields,
                )
                db.add(consignment)
                db.flush()
                append_tracking(
                    db, ctx, consignment, "booked", location="Consignment booked", branch_id=from_branch.id
                )
            break
        except IntegrityError:
            # Two bookings raced for the same CN sequence number.
            if attempt == _CN_RETRIES:
                raise
            logger.warning("CN number collision, retrying attempt=%s branch=%s", attempt, from_branch.id)

    logger.info("Consignment booked cn=%s tenant=%s user=%s", consignment.cn_number, ctx.tenant_id, ctx.user_id)
    if sms is not None:
        _notify(
            sms,
            consignment.consignor_phone,
            notifications.booking_message(
                consignment.cn_number, from_branch.city, to_branch.city, consignment.total_amount
            ),
        )
    return consignment


def update_status(
    db: Session,
    ctx: TenantContext,
    consignment_id: str,
    status: str,
    *,
    remarks: str | None = None,
    branch_id: str | None = None,
    sms: SmsSender | None = None,
) -> Consignment:
    """
    Move a consignment to `status` and record the change in its tracking history.

    The status is checked before anything is read or written. The update and the
    tracking append commit together or not at all.
    """

    if status not in CONSIGNMENT_STATUSES:
        raise ValidationError(
            "Invalid status",
            errors=[{"loc": ["body", "status"], "msg": f"must be one of: {', '.join(CONSIGNMENT_STATUSES)}"}],
        )

    with atomic(db):
        consignment = get_visible_or_404(db, ctx, "consignment", Consignment.id == consignment_id, for_update=True)
        branch = active_branch(db, ctx, branch_id) if branch_id else None

        consignment.status = status
        if branch is not None:
            consignment.current_branch_id = branch.id
        consignment.updated_at = utcnow()
        db.flush()

        append_tracking(
            db,
            ctx,
            consignment,
            status,
            location=f"Status updated to {status}",
            branch_id=branch.id if branch is not None else consignment.current_branch_id,
            remarks=remarks,
        )

    logger.info("Consignment status cn=%s status=%s user=%s", consignment.cn_number, status, ctx.user_id)
    if sms is not None and status in NOTIFY_STATUSES:
        phone = consignment.consignee_phone if status in CONSIGNEE_STATUSES else consignment.consignor_phone
        _notify(sms, phone, notifications.status_message(consignment.cn_number, status))
    return consignment


def _notify(sms: SmsSender, phone: str, message: str) -> None:
    try:
        sms.send(phone, message)
    except DependencyFailure:
        logger.warning("Consignment notification failed phone=%s", phone)


@dataclass(frozen=True)
class ConsignmentFilters:
    from_date: date | None = None
    to_date: date | None = None
    branch_id: str | None = None
    status: str | None = None
    payment_type: str | None = None
    search: str | None = None


def list_consignments(db: Session, ctx: TenantContext, filters: ConsignmentFilters, params: PageParams) -> Page[Consignment]:
    query = ScopedQuery(Consignment, ctx, "consignment").where(
        DateRange(Consignment.booking_date, filters.from_date, filters.to_date),
        Eq(Consignment.status, filters.status),
        Eq(Consignment.payment_type, filters.payment_type),
        Search(SEARCH_COLUMNS, filters.search),
    )
    if filters.branch_id:
        query.where(AnyOf((Consignment.from_branch_id, Consignment.to_branch_id), filters.branch_id))
    query.order_by(Consignment.booking_date.desc(), Consignment.booking_time.desc())
    return query.page(db, params)


def pending_for_ogpl(
    db: Session, ctx: TenantContext, *, to_branch_id: str | None = None, branch_id: str | None = None
) -> list[Consignment]:
    """Consignments that can still be loaded: booked or picked, on no OGPL yet."""

    query = (
        ScopedQuery(Consignment, ctx, "consignment")
        .where(
            In(Consignment.status, OGPL_READY_STATUSES),
            IsNull(Consignment.ogpl_id),
            Eq(Consignment.to_branch_id, to_branch_id),
            Eq(Consignment.current_branch_id, branch_id),
        )
        .order_by(Consignment.booking_date.asc(), Consignment.booking_time.asc())
    )
    return query.all(db)


def tracking_history(db: Session, consignment: Consignment) -> list[TrackingEvent]:
    stmt = (
        select(TrackingEvent)
        .where(TrackingEvent.tenant_id == consignment.tenant_id, TrackingEvent.consignment_id == consignment.id)
        .order_by(TrackingEvent.created_at.asc(), TrackingEvent.id.asc())
    )
    return list(db.scalars(stmt).unique().all())


def with_history(db: Session, consignment: Consignment) -> ConsignmentDetailOut:
    detail = ConsignmentDetailOut.model_validate(consignment)
    events = [TrackingEventOut.model_validate(e) for e in tracking_history(db, consignment)]
    return detail.model_copy(update={"tracking_history": events})
