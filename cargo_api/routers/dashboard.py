from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cargo_api.access import TenantContext
from cargo_api.db.session import get_db
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.shipping import BranchSummaryRow, ConsignmentOut, DashboardStatsOut, RevenuePoint
from cargo_api.security.decorators import require_roles
from cargo_api.security.dependencies import get_tenant_context
from cargo_api.services import dashboard

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=ApiResponse[DashboardStatsOut])
def get_stats(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return envelope(dashboard.stats(db, ctx))


@router.get("/recent-bookings", response_model=ApiResponse[list[ConsignmentOut]])
def get_recent_bookings(
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return envelope(dashboard.recent_bookings(db, ctx, limit=limit))


@router.get("/revenue-chart", response_model=ApiResponse[list[RevenuePoint]])
def get_revenue_chart(
    days: int = Query(default=7, ge=1, le=90),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return envelope(dashboard.revenue_chart(db, ctx, days=days))


@router.get("/branch-summary", response_model=ApiResponse[list[BranchSummaryRow]])
@require_roles(["admin", "superadmin"])
def get_branch_summary(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return envelope(dashboard.branch_summary(db, ctx))
