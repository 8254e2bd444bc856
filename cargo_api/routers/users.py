from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cargo_api.access import PRIVILEGED_ROLES, Eq, PageParams, ScopedQuery, Search, TenantContext, get_visible_or_404
from cargo_api.db.session import atomic, get_db
from cargo_api.errors import AuthorizationError, ConflictError, ValidationError
from cargo_api.models.tenancy import User
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.tenancy import Role, UserCreate, UserOut, UserUpdate
from cargo_api.security.auth import hash_password, username_taken
from cargo_api.security.dependencies import get_app_settings, get_page_params, get_tenant_context
from cargo_api.services.consignments import active_branch
from cargo_api.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _check_assignment(db: Session, ctx: TenantContext, role: str, branch_id: str | None) -> None:
    if role == "superadmin" and ctx.role != "superadmin":
        raise AuthorizationError("Only a superadmin can grant the superadmin role")
    if role not in PRIVILEGED_ROLES and not branch_id:
        raise ValidationError("Branch is required for this role")
    if branch_id:
        active_branch(db, ctx, branch_id, "Invalid branch")


@router.get("", response_model=ApiResponse[list[UserOut]])
def list_users(
    search: str | None = None,
    role: Role | None = None,
    branch_id: str | None = None,
    is_active: bool | None = None,
    params: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    query = (
        ScopedQuery(User, ctx, "user")
        .where(
            Eq(User.role, role),
            Eq(User.branch_id, branch_id),
            Eq(User.is_active, is_active),
            Search((User.username, User.full_name, User.phone, User.email), search),
        )
        .order_by(User.full_name.asc())
    )
    page = query.page(db, params)
    return envelope(page.items, page=page)


@router.get("/{id}", response_model=ApiResponse[UserOut])
def get_user(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return envelope(get_visible_or_404(db, ctx, "user", User.id == id))


@router.post("", response_model=ApiResponse[UserOut], status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    with atomic(db):
        _check_assignment(db, ctx, body.role, body.branch_id)
        if username_taken(db, body.username):
            raise ConflictError("Username already exists")

        user = User(
            tenant_id=ctx.tenant_id,
            password_hash=hash_password(body.password, rounds=settings.bcrypt_rounds),
            **body.model_dump(exclude={"password"}),
        )
        db.add(user)
        try:
            db.flush()
        except IntegrityError as e:
            # a concurrent signup or create took the username after the check
            raise ConflictError("Username already exists") from e

    logger.info("User created user=%s role=%s tenant=%s", user.id, user.role, ctx.tenant_id)
    return envelope(user, message="User created successfully")


@router.patch("/{id}", response_model=ApiResponse[UserOut])
def update_user(
    id: str,
    body: UserUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    changes = body.model_dump(exclude_unset=True)
    with atomic(db):
        user = get_visible_or_404(db, ctx, "user", User.id == id, for_update=True)

        if "role" in changes or "branch_id" in changes:
            _check_assignment(db, ctx, changes.get("role") or user.role, changes.get("branch_id", user.branch_id))
        if user.id == ctx.user_id and changes.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account")

        password = changes.pop("password", None)
        if password:
            user.password_hash = hash_password(password, rounds=settings.bcrypt_rounds)
        for field, value in changes.items():
            setattr(user, field, value)
        db.flush()

    return envelope(user, message="User updated successfully")


@router.delete("/{id}", response_model=ApiResponse[None])
def deactivate_user(id: str, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    with atomic(db):
        user = get_visible_or_404(db, ctx, "user", User.id == id, for_update=True)
        if user.id == ctx.user_id:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = False

    logger.info("User deactivated user=%s tenant=%s", id, ctx.tenant_id)
    return envelope(message="User deactivated successfully")
