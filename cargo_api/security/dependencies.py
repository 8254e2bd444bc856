from __future__ import annotations

import logging

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session

from cargo_api.access.context import TenantContext
from cargo_api.access.query import PageParams, page_params
from cargo_api.access.resolver import resolve_tenant_context
from cargo_api.db.session import TENANT_CONTEXT_KEY, get_db
from cargo_api.errors import AuthenticationError, AuthorizationError
from cargo_api.models.tenancy import User
from cargo_api.security.auth import extract_bearer_token, load_user
from cargo_api.security.config import SecurityConfig
from cargo_api.security.tokens import TokenSigner
from cargo_api.services.notifications import Mailer, SmsSender
from cargo_api.settings import Settings

logger = logging.getLogger(__name__)


def _app_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"app.state.{name} is not set. Was the app built with create_app()?")
    return value


def get_security_config(request: Request) -> SecurityConfig:
    return _app_state(request, "security_config")


def get_app_settings(request: Request) -> Settings:
    return _app_state(request, "settings")


def get_token_signer(request: Request) -> TokenSigner:
    return _app_state(request, "token_signer")


def get_sms_sender(request: Request) -> SmsSender:
    return _app_state(request, "sms_sender")


def get_mailer(request: Request) -> Mailer:
    return _app_state(request, "mailer")


def get_page_params(
    page: int | None = Query(default=None),
    limit: int | None = Query(default=None),
    settings: Settings = Depends(get_app_settings),
) -> PageParams:
    return page_params(page, limit, default_limit=settings.default_page_limit, max_limit=settings.max_page_limit)


def get_current_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise AuthenticationError("Authentication required")
    return user


def get_tenant_context(request: Request) -> TenantContext:
    ctx = getattr(request.state, TENANT_CONTEXT_KEY, None)
    if ctx is None:
        raise AuthenticationError("Authentication required")
    return ctx


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    signer: TokenSigner = Depends(get_token_signer),
    db: Session = Depends(get_db, use_cache=False),
) -> None:
    """
    Global security dependency, installed on the app so route handlers need no changes.

    Runs after routing, so it can combine the YAML route rule with `@require_roles`
    metadata on the endpoint. For authenticated routes it:
    - verifies the bearer token,
    - resolves the TenantContext (token tenant wins; a conflicting hint header is a 403),
    - re-loads the user (must still be active, in an active tenant),
    - checks required roles,
    - attaches the context to `request.state` and to the DB session.
    """

    path = request.url.path
    method = request.method.upper()

    rule = config.match(path, method)

    endpoint = request.scope.get("endpoint")
    decorator_roles = set(getattr(endpoint, "__security_required_roles__", set())) if endpoint else set()

    auth_required = rule.auth_required or bool(decorator_roles)
    if not auth_required:
        return

    token = extract_bearer_token(request, config)
    if token is None:
        raise AuthenticationError("No token provided")

    claims = signer.verify_access_token(token)
    ctx = resolve_tenant_context(
        claims,
        tenant_code_hint=request.headers.get(config.auth.tenant_code_header),
        tenant_id_hint=request.headers.get(config.auth.tenant_id_header),
    )

    user = load_user(db, ctx.user_id, ctx.tenant_id)
    if user.role != ctx.role or user.branch_id != ctx.branch_id:
        # Role or branch changed since the token was issued; the stored values win.
        logger.info("Token claims stale for user=%s; using stored role/branch", user.id)
        ctx = TenantContext(
            tenant_id=ctx.tenant_id,
            tenant_code=ctx.tenant_code,
            user_id=ctx.user_id,
            username=user.username,
            role=user.role,
            branch_id=user.branch_id,
        )

    required_roles = set(rule.required_roles) | decorator_roles
    if required_roles and ctx.role not in required_roles:
        logger.info("Role denied user=%s role=%s path=%s", ctx.user_id, ctx.role, path)
        raise AuthorizationError("Insufficient permissions")

    request.state.user = user
    setattr(request.state, TENANT_CONTEXT_KEY, ctx)
    db.info[TENANT_CONTEXT_KEY] = ctx
