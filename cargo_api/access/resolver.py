"""
Tenant Context Resolver.

The tenant comes from the verified token, and only from there. Clients may send a
tenant hint header (``X-Tenant-Code`` or ``X-Tenant-Id``) for routing or display;
a hint is compared with the token claim and either ignored (it matches) or
rejected (it does not). It is never merged into the context.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from cargo_api.access.context import TenantContext
from cargo_api.errors import AuthenticationError, AuthorizationError
from cargo_api.models.tenancy import ROLES

logger = logging.getLogger(__name__)


def _claim(claims: Mapping[str, Any], key: str) -> str | None:
    value = claims.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_tenant_context(
    claims: Mapping[str, Any],
    tenant_code_hint: str | None = None,
    tenant_id_hint: str | None = None,
) -> TenantContext:
    """
    Build a TenantContext from verified token claims.

    Raises AuthenticationError when the token does not carry a usable tenant, user or
    role, and AuthorizationError when a client tenant hint names another tenant.
    """

    tenant_id = _claim(claims, "tenant_id")
    user_id = _claim(claims, "sub")
    role = _claim(claims, "role")
    if not tenant_id or not user_id:
        logger.info("Token without tenant or subject claim")
        raise AuthenticationError("Invalid token: missing tenant")
    if role not in ROLES:
        logger.info("Token with unknown role=%s", role)
        raise AuthenticationError("Invalid token: unknown role")

    tenant_code = _claim(claims, "tenant_code")

    hinted_code = (tenant_code_hint or "").strip() or None
    hinted_id = (tenant_id_hint or "").strip() or None
    if hinted_id is not None and hinted_id != tenant_id:
        logger.warning("Tenant id hint conflicts with token user=%s", user_id)
        raise AuthorizationError("Tenant mismatch between request and authentication")
    if hinted_code is not None and hinted_code.lower() != (tenant_code or "").lower():
        logger.warning("Tenant code hint conflicts with token user=%s", user_id)
        raise AuthorizationError("Tenant mismatch between request and authentication")

    return TenantContext(
        tenant_id=tenant_id,
        tenant_code=tenant_code,
        user_id=user_id,
        username=_claim(claims, "username") or "",
        role=role,
        branch_id=_claim(claims, "branch_id"),
    )
