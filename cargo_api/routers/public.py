from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from cargo_api.db.session import get_db
from cargo_api.errors import NotFoundError
from cargo_api.models.shipping import Consignment
from cargo_api.models.tenancy import Tenant
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.shipping import PublicTrackingEventOut, PublicTrackingOut
from cargo_api.services.consignments import tracking_history

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/track/{tenant_code}/{cn_number}", response_model=ApiResponse[PublicTrackingOut])
def track(tenant_code: str, cn_number: str, db: Session = Depends(get_db)) -> dict:
    """
    Unauthenticated tracking page for a consignment.

    The CN number alone is not unique across companies, so the company code is part of
    the path. Unknown company, inactive company and unknown CN look identical.
    Charges, phone numbers and internal remarks are never exposed here.
    """

    not_found = NotFoundError("Consignment not found")

    tenant = db.scalars(select(Tenant).where(Tenant.code == tenant_code.upper())).first()
    if tenant is None or not tenant.is_active:
        raise not_found

    consignment = db.scalars(
        select(Consignment).where(Consignment.tenant_id == tenant.id, Consignment.cn_number == cn_number)
    ).first()
    if consignment is None:
        logger.info("Public tracking miss tenant=%s cn=%s", tenant.code, cn_number)
        raise not_found

    history = [PublicTrackingEventOut.model_validate(e) for e in tracking_history(db, consignment)]
    result = PublicTrackingOut.model_validate(consignment).model_copy(update={"tracking_history": history})
    return envelope(result)
