from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from cargo_api.access import Eq, PageParams, ScopedQuery, Search, TenantContext, get_visible_or_404
from cargo_api.db.session import atomic, get_db
from cargo_api.errors import ConflictError, ValidationError
from cargo_api.models.tenancy import Branch
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.tenancy import BranchCreate, BranchOut, BranchUpdate
from cargo_api.security.dependencies import get_page_params, get_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/branches", tags=["branches"])


def _code_taken(db: Session, ctx: TenantContext, code: str) -> bool:
    stmt = select(Branch.id).where(Branch.tenant_id == ctx.tenant_id, Branch.branch_code == code)
    return db.scalar(stmt.limit(1)) is not None


def _clear_head_office(db: Session, ctx: TenantContext, keep_id: str | None) -> None:
    stmt = update(Branch).where(Branch.tenant_id == ctx.tenant_id, Branch.is_head_office.is_(True))
    if keep_id is not None:
        stmt = stmt.where(Branch.id != keep_id)
    db.execute(stmt.values(is_head_office=False).execution_options(synchronize_session="fetch"))


@router.get("", response_model=ApiResponse[list[BranchOut]])
def list_branches(
    search: str | None = None,
    is_active: bool | None = None,
    params: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    query = (
        ScopedQuery(Branch, ctx, "branch")
        .where(Eq(Branch.is_active, is_active), Search((Branch.name, Branch.branch_code, Branch.city), search))
        .order_by(Branch.is_head_office.desc(), Branch.branch_code.asc())
    )
    page = query.page(db, params)
    return envelope(page.items, page=page)


@router.get("/{id}", response_model=ApiResponse[BranchOut])
def get_branch(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return envelope(get_visible_or_404(db, ctx, "branch", Branch.id == id))


@router.post("", response_model=ApiResponse[BranchOut], status_code=status.HTTP_201_CREATED)
def create_branch(
    body: BranchCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    code = body.branch_code.upper()
    with atomic(db):
        if _code_taken(db, ctx, code):
            raise ConflictError("Branch code already exists")
        branch = Branch(tenant_id=ctx.tenant_id, **body.model_dump(exclude={"branch_code"}), branch_code=code)
        db.add(branch)
        db.flush()
        if branch.is_head_office:
            _clear_head_office(db, ctx, keep_id=branch.id)

    logger.info("Branch created code=%s tenant=%s", code, ctx.tenant_id)
    return envelope(branch, message="Branch created successfully")


@router.patch("/{id}", response_model=ApiResponse[BranchOut])
def update_branch(
    id: str,
    body: BranchUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    changes = body.model_dump(exclude_unset=True)
    with atomic(db):
        branch = get_visible_or_404(db, ctx, "branch", Branch.id == id, for_update=True)

        if branch.is_head_office and changes.get("is_active") is False:
            raise ValidationError("Head office cannot be deactivated")
        if branch.is_head_office and changes.get("is_head_office") is False:
            raise ValidationError("Mark another branch as head office instead")

        for field, value in changes.items():
            setattr(branch, field, value)
        db.flush()
        if changes.get("is_head_office"):
            _clear_head_office(db, ctx, keep_id=branch.id)

    return envelope(branch, message="Branch updated successfully")


@router.delete("/{id}", response_model=ApiResponse[None])
def deactivate_branch(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    with atomic(db):
        branch = get_visible_or_404(db, ctx, "branch", Branch.id == id, for_update=True)
        if branch.is_head_office:
            raise ValidationError("Head office cannot be deactivated")
        branch.is_active = False

    logger.info("Branch deactivated id=%s tenant=%s", id, ctx.tenant_id)
    return envelope(message="Branch deactivated successfully")
