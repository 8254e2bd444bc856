"""
Booking and status transitions against the ORM.

Uses db_session: fresh in-memory SQLite per test.
"""
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from cargo_api.db.base import utcnow
from cargo_api.errors import AuthorizationError, ValidationError
from cargo_api.models.shipping import Consignment, TrackingEvent
from cargo_api.schemas.shipping import ConsignmentCreate
from cargo_api.services import consignments


def _tracking_count(db, consignment_id) -> int:
    stmt = select(func.count()).select_from(TrackingEvent).where(TrackingEvent.consignment_id == consignment_id)
    return db.scalar(stmt)


def test_gst_is_split_within_a_state():
    gst = consignments.calculate_gst(Decimal("1000"), "Maharashtra", " maharashtra ", 0.18)

    assert (gst.cgst, gst.sgst, gst.igst) == (Decimal("90.00"), Decimal("90.00"), Decimal("0.00"))
    assert gst.total == Decimal("1180.00")


def test_gst_is_integrated_across_states():
    gst = consignments.calculate_gst(Decimal("1000"), "Maharashtra", "Delhi", 0.18)

    assert (gst.cgst, gst.sgst, gst.igst) == (Decimal("0.00"), Decimal("0.00"), Decimal("180.00"))


def test_gst_halves_add_up_to_the_tax():
    gst = consignments.calculate_gst(Decimal("100.05"), "Goa", "Goa", 0.18)

    assert gst.cgst + gst.sgst == gst.tax == Decimal("18.01")


def test_booking_sets_totals_number_and_first_event(db_session, world, ctx_for, booking_payload, sms):
    data = ConsignmentCreate(**booking_payload(world.mum, world.dl))

    consignment = consignments.book_consignment(db_session, ctx_for(world.op_mum), data, gst_rate=0.18, sms=sms)

    assert consignment.cn_number == f"MUM{utcnow().year}000001"
    assert consignment.status == "booked"
    assert consignment.current_branch_id == world.mum.id
    assert consignment.igst == Decimal("189.00")
    assert consignment.total_amount == Decimal("1239.00")
    assert consignment.charged_weight == Decimal("45.5")
    assert _tracking_count(db_session, consignment.id) == 1
    assert sms.sent[0][0] == "9811111111"


def test_cn_numbers_continue_per_branch(db_session, world, ctx_for, booking_payload):
    ctx = ctx_for(world.admin)
    first = consignments.book_consignment(db_session, ctx, ConsignmentCreate(**booking_payload(world.mum, world.dl)), gst_rate=0.18)
    second = consignments.book_consignment(db_session, ctx, ConsignmentCreate(**booking_payload(world.mum, world.pun)), gst_rate=0.18)
    other = consignments.book_consignment(db_session, ctx, ConsignmentCreate(**booking_payload(world.pun, world.dl)), gst_rate=0.18)

    assert first.cn_number.endswith("000001")
    assert second.cn_number.endswith("000002")
    assert other.cn_number.startswith("PUN") and other.cn_number.endswith("000001")


def test_operator_cannot_book_from_another_branch(db_session, world, ctx_for, booking_payload):
    data = ConsignmentCreate(**booking_payload(world.pun, world.dl))

    with pytest.raises(AuthorizationError):
        consignments.book_consignment(db_session, ctx_for(world.op_mum), data, gst_rate=0.18)
    assert db_session.scalar(select(func.count()).select_from(Consignment)) == 0


def test_booking_rejects_foreign_tenant_branch(db_session, world, ctx_for, booking_payload):
    data = ConsignmentCreate(**booking_payload(world.mum, world.blr))

    with pytest.raises(ValidationError):
        consignments.book_consignment(db_session, ctx_for(world.admin), data, gst_rate=0.18)


def test_booking_sms_failure_does_not_undo_booking(db_session, world, ctx_for, booking_payload, sms):
    sms.fail = True
    data = ConsignmentCreate(**booking_payload(world.mum, world.dl))

    consignment = consignments.book_consignment(db_session, ctx_for(world.admin), data, gst_rate=0.18, sms=sms)

    db_session.expire_all()
    assert db_session.get(Consignment, consignment.id) is not None


def test_status_update_appends_tracking(db_session, world, ctx_for, make_consignment):
    consignment = make_consignment(world.demo, world.mum, world.dl)

    updated = consignments.update_status(
        db_session, ctx_for(world.op_mum), consignment.id, "out_for_delivery", remarks="On the van", branch_id=world.dl.id
    )

    assert updated.status == "out_for_delivery"
    assert updated.current_branch_id == world.dl.id
    history = consignments.tracking_history(db_session, updated)
    assert [e.status for e in history] == ["out_for_delivery"]
    assert history[0].remarks == "On the van"


def test_invalid_status_writes_nothing(db_session, world, ctx_for, make_consignment):
    consignment = make_consignment(world.demo, world.mum, world.dl)

    with pytest.raises(ValidationError) as exc_info:
        consignments.update_status(db_session, ctx_for(world.admin), consignment.id, "lost")

    assert exc_info.value.errors
    db_session.expire_all()
    assert db_session.get(Consignment, consignment.id).status == "booked"
    assert _tracking_count(db_session, consignment.id) == 0


def test_status_update_is_atomic_with_tracking(db_session, world, ctx_for, make_consignment, monkeypatch):
    consignment = make_consignment(world.demo, world.mum, world.dl)

    def broken_append(*args, **kwargs):
        raise RuntimeError("tracking insert failed")

    monkeypatch.setattr(consignments, "append_tracking", broken_append)

    with pytest.raises(RuntimeError):
        consignments.update_status(db_session, ctx_for(world.admin), consignment.id, "delivered")

    db_session.expire_all()
    assert db_session.get(Consignment, consignment.id).status == "booked"
    assert _tracking_count(db_session, consignment.id) == 0


def test_tracking_events_are_append_only(db_session, world, ctx_for, make_consignment):
    consignment = make_consignment(world.demo, world.mum, world.dl)
    event = consignments.append_tracking(db_session, ctx_for(world.admin), consignment, "booked")
    db_session.commit()

    event.remarks = "edited"
    with pytest.raises(RuntimeError):
        db_session.flush()
    db_session.rollback()
