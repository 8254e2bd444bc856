"""OGPL service: row locks and all-or-nothing loading against the ORM."""
from __future__ import annotations

import pytest
from sqlalchemy.dialects import postgresql

from cargo_api.errors import ValidationError
from cargo_api.models.shipping import Consignment
from cargo_api.schemas.shipping import OgplCreate
from cargo_api.services import ogpl as ogpl_service


def test_consignment_locks_skip_the_branch_joins(world, ctx_for):
    stmt = ogpl_service.locked_consignments(ctx_for(world.op_mum), Consignment.ogpl_id == "o1")

    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "LEFT OUTER JOIN branches" in sql
    assert sql.endswith("FOR UPDATE OF consignments")


def test_failed_load_leaves_the_ogpl_empty(db_session, world, ctx_for, make_consignment):
    ctx = ctx_for(world.op_mum)
    trip = ogpl_service.create_ogpl(
        db_session,
        ctx,
        OgplCreate(from_branch_id=world.mum.id, to_branch_id=world.dl.id, vehicle_number="MH12AB1234"),
    )
    good = make_consignment(world.demo, world.mum, world.dl)
    elsewhere = make_consignment(world.demo, world.mum, world.pun)

    with pytest.raises(ValidationError) as exc_info:
        ogpl_service.load_consignments(db_session, ctx, trip.id, [good.id, elsewhere.id])

    assert [e["consignment_id"] for e in exc_info.value.errors] == [elsewhere.id]
    db_session.refresh(good)
    assert good.ogpl_id is None
    assert good.status == "booked"
