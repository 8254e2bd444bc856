from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from cargo_api.access import TenantContext
from cargo_api.db.base import utcnow
from cargo_api.db.session import atomic, get_db
from cargo_api.errors import AuthenticationError, ValidationError
from cargo_api.models.tenancy import User
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.tenancy import AccessTokenOut, ChangePasswordIn, LoginIn, RefreshIn, SessionOut, UserOut
from cargo_api.security.auth import hash_password, load_user, verify_password
from cargo_api.security.dependencies import get_app_settings, get_current_user, get_tenant_context, get_token_signer
from cargo_api.security.tokens import TokenSigner, session_claims
from cargo_api.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=ApiResponse[SessionOut])
def login(
    body: LoginIn,
    db: Session = Depends(get_db),
    signer: TokenSigner = Depends(get_token_signer),
) -> dict:
    user = db.scalars(select(User).where(User.username == body.username)).first()

    # Same answer for unknown user, wrong password and disabled accounts.
    if user is None or not user.is_active or not user.tenant.is_active:
        logger.info("Login failed username=%s", body.username)
        raise AuthenticationError("Invalid credentials")
    if not verify_password(body.password, user.password_hash):
        logger.info("Login failed username=%s", body.username)
        raise AuthenticationError("Invalid credentials")

    with atomic(db):
        user.last_login = utcnow()

    claims = session_claims(user)
    logger.info("Login user=%s tenant=%s", user.id, user.tenant_id)
    return envelope(
        {
            "user": user,
            "access_token": signer.issue_access_token(claims),
            "refresh_token": signer.issue_refresh_token(claims),
        }
    )


@router.post("/refresh", response_model=ApiResponse[AccessTokenOut])
def refresh(
    body: RefreshIn,
    db: Session = Depends(get_db),
    signer: TokenSigner = Depends(get_token_signer),
) -> dict:
    claims = signer.verify_refresh_token(body.refresh_token)
    tenant_id = claims.get("tenant_id")
    if not tenant_id:
        raise AuthenticationError("Invalid refresh token")

    # Claims are rebuilt from the stored user, so role/branch changes apply on refresh.
    user = load_user(db, str(claims["sub"]), str(tenant_id))
    return envelope({"access_token": signer.issue_access_token(session_claims(user))})


@router.get("/me", response_model=ApiResponse[UserOut])
def me(user: User = Depends(get_current_user)) -> dict:
    return envelope(user)


@router.post("/change-password", response_model=ApiResponse[None])
def change_password(
    body: ChangePasswordIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    with atomic(db):
        user = db.get(User, ctx.user_id)
        if user is None:
            raise AuthenticationError("Invalid or inactive user")
        if not verify_password(body.current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        user.password_hash = hash_password(body.new_password, rounds=settings.bcrypt_rounds)

    logger.info("Password changed user=%s", ctx.user_id)
    return envelope(message="Password changed successfully")


@router.post("/logout", response_model=ApiResponse[None])
def logout(ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    # Tokens are stateless; the client drops them.
    logger.info("Logout user=%s", ctx.user_id)
    return envelope(message="Logged out successfully")
