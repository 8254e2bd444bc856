from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cargo_api.access import PageParams, TenantContext, get_visible_or_404
from cargo_api.db.session import get_db
from cargo_api.models.shipping import Ogpl
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.shipping import ConsignmentOut, OgplCreate, OgplDetailOut, OgplLoadIn, OgplMoveIn, OgplOut
from cargo_api.security.dependencies import get_page_params, get_tenant_context
from cargo_api.services import ogpl as ogpl_service

router = APIRouter(prefix="/ogpl", tags=["ogpl"])


def _detail(db: Session, ctx: TenantContext, ogpl: Ogpl) -> OgplDetailOut:
    carried = [ConsignmentOut.model_validate(c) for c in ogpl_service.carried_consignments(db, ctx, ogpl)]
    return OgplDetailOut.model_validate(ogpl).model_copy(update={"consignments": carried})


@router.post("", response_model=ApiResponse[OgplOut], status_code=status.HTTP_201_CREATED)
def create_ogpl(body: OgplCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return envelope(ogpl_service.create_ogpl(db, ctx, body), message="OGPL created successfully")


@router.get("", response_model=ApiResponse[list[OgplOut]])
def list_ogpls(
    status: Literal["created", "loading", "departed", "reached"] | None = None,
    branch_id: str | None = None,
    params: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    page = ogpl_service.list_ogpls(db, ctx, params, status=status, branch_id=branch_id)
    return envelope(page.items, page=page)


@router.get("/{id}", response_model=ApiResponse[OgplDetailOut])
def get_ogpl(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    ogpl = get_visible_or_404(db, ctx, "ogpl", Ogpl.id == id, label="OGPL")
    return envelope(_detail(db, ctx, ogpl))


@router.post("/{id}/load", response_model=ApiResponse[OgplDetailOut])
def load(
    id: str,
    body: OgplLoadIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    ogpl = ogpl_service.load_consignments(db, ctx, id, body.consignment_ids)
    return envelope(_detail(db, ctx, ogpl), message="Consignments loaded successfully")


@router.post("/{id}/depart", response_model=ApiResponse[OgplOut])
def depart(
    id: str,
    body: OgplMoveIn | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    ogpl = ogpl_service.depart(db, ctx, id, remarks=body.remarks if body else None)
    return envelope(ogpl, message="OGPL departed successfully")


@router.post("/{id}/arrive", response_model=ApiResponse[OgplOut])
def arrive(
    id: str,
    body: OgplMoveIn | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    ogpl = ogpl_service.arrive(db, ctx, id, remarks=body.remarks if body else None)
    return envelope(ogpl, message="OGPL arrived successfully")
