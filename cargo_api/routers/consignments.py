from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cargo_api.access import PageParams, TenantContext, get_visible_or_404
from cargo_api.db.session import get_db
from cargo_api.models.shipping import Consignment
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.shipping import (
    ConsignmentCreate,
    ConsignmentDetailOut,
    ConsignmentOut,
    ConsignmentStatus,
    PaymentType,
    StatusUpdateIn,
    TrackingEventOut,
)
from cargo_api.security.dependencies import get_app_settings, get_page_params, get_sms_sender, get_tenant_context
from cargo_api.services import consignments
from cargo_api.services.notifications import SmsSender
from cargo_api.settings import Settings

router = APIRouter(prefix="/consignments", tags=["consignments"])


@router.post("", response_model=ApiResponse[ConsignmentOut], status_code=status.HTTP_201_CREATED)
def create_consignment(
    body: ConsignmentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
    settings: Settings = Depends(get_app_settings),
    sms: SmsSender = Depends(get_sms_sender),
) -> dict:
    consignment = consignments.book_consignment(db, ctx, body, gst_rate=settings.gst_rate, sms=sms)
    return envelope(consignment, message="Consignment booked successfully")


@router.get("", response_model=ApiResponse[list[ConsignmentOut]])
def list_consignments(
    from_date: date | None = None,
    to_date: date | None = None,
    branch_id: str | None = None,
    status: ConsignmentStatus | None = None,
    payment_type: PaymentType | None = None,
    search: str | None = None,
    params: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    filters = consignments.ConsignmentFilters(
        from_date=from_date,
        to_date=to_date,
        branch_id=branch_id,
        status=status,
        payment_type=payment_type,
        search=search,
    )
    page = consignments.list_consignments(db, ctx, filters, params)
    return envelope(page.items, page=page)


@router.get("/pending-ogpl", response_model=ApiResponse[list[ConsignmentOut]])
def pending_for_ogpl(
    to_branch_id: str | None = None,
    branch_id: str | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return envelope(consignments.pending_for_ogpl(db, ctx, to_branch_id=to_branch_id, branch_id=branch_id))


@router.get("/cn/{cn_number}", response_model=ApiResponse[ConsignmentDetailOut])
def get_by_cn(cn_number: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    consignment = get_visible_or_404(db, ctx, "consignment", Consignment.cn_number == cn_number)
    return envelope(consignments.with_history(db, consignment))


@router.get("/{id}", response_model=ApiResponse[ConsignmentDetailOut])
def get_consignment(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    consignment = get_visible_or_404(db, ctx, "consignment", Consignment.id == id)
    return envelope(consignments.with_history(db, consignment))


@router.get("/{id}/tracking", response_model=ApiResponse[list[TrackingEventOut]])
def get_tracking(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    consignment = get_visible_or_404(db, ctx, "consignment", Consignment.id == id)
    return envelope(consignments.tracking_history(db, consignment))


@router.patch("/{id}/status", response_model=ApiResponse[ConsignmentOut])
def update_status(
    id: str,
    body: StatusUpdateIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
    sms: SmsSender = Depends(get_sms_sender),
) -> dict:
    consignment = consignments.update_status(
        db, ctx, id, body.status, remarks=body.remarks, branch_id=body.branch_id, sms=sms
    )
    return envelope(consignment, message="Consignment status updated successfully")
