"""Dashboard aggregates use the same visibility as the consignment list."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from cargo_api.db.base import utcnow


def test_stats_follow_branch_scope(client, world, auth_headers, make_consignment):
    make_consignment(world.demo, world.mum, world.dl, total_amount=Decimal("118"))
    make_consignment(world.demo, world.mum, world.pun, status="in_transit", total_amount=Decimal("236"))
    make_consignment(world.demo, world.pun, world.dl, status="cancelled", total_amount=Decimal("500"))
    make_consignment(world.acme, world.blr, world.blr, total_amount=Decimal("999"))

    admin = client.get("/dashboard/stats", headers=auth_headers(world.admin)).json()["data"]
    operator = client.get("/dashboard/stats", headers=auth_headers(world.op_mum)).json()["data"]

    assert admin["today_bookings"] == 3
    assert admin["today_revenue"] == 354.0
    assert admin["in_transit"] == 1
    assert admin["pending_ogpl"] == 1
    assert admin["status_breakdown"] == {"booked": 1, "in_transit": 1, "cancelled": 1}
    assert operator["today_bookings"] == 2


def test_revenue_chart_fills_empty_days(client, world, auth_headers, make_consignment):
    today = utcnow().date()
    make_consignment(world.demo, world.mum, world.dl, booking_date=today - timedelta(days=1))

    points = client.get("/dashboard/revenue-chart?days=3", headers=auth_headers(world.admin)).json()["data"]

    assert [p["date"] for p in points] == [str(today - timedelta(days=n)) for n in (2, 1, 0)]
    assert [p["bookings"] for p in points] == [0, 1, 0]


def test_revenue_chart_days_are_bounded(client, world, auth_headers):
    response = client.get("/dashboard/revenue-chart?days=365", headers=auth_headers(world.admin))
    assert response.status_code == 400


def test_recent_bookings_are_scoped(client, world, auth_headers, make_consignment):
    mine = make_consignment(world.demo, world.dl, world.mum)
    make_consignment(world.demo, world.pun, world.dl)

    data = client.get("/dashboard/recent-bookings", headers=auth_headers(world.op_mum)).json()["data"]
    assert [c["id"] for c in data] == [mine.id]


def test_branch_summary_is_for_admins(client, world, auth_headers, make_consignment):
    make_consignment(world.demo, world.mum, world.dl, status="delivered")

    denied = client.get("/dashboard/branch-summary", headers=auth_headers(world.mgr_pun))
    allowed = client.get("/dashboard/branch-summary", headers=auth_headers(world.admin))

    assert denied.status_code == 403
    rows = {row["branch_code"]: row for row in allowed.json()["data"]}
    assert set(rows) == {"MUM", "PUN", "DEL"}
    assert rows["MUM"]["bookings"] == 1
    assert rows["DEL"]["delivered"] == 1
