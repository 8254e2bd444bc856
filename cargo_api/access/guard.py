from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from cargo_api.access import policy
from cargo_api.access.context import TenantContext
from cargo_api.errors import NotFoundError

logger = logging.getLogger(__name__)


def lookup_statement(ctx: TenantContext, record_kind: str, *criteria: Any, for_update: bool = False) -> Select:
    model = policy.RECORD_MODELS[record_kind]
    stmt = select(model).where(model.tenant_id == ctx.tenant_id, *criteria)
    if for_update:
        # joined eager loads add outer joins; only the record's own table is locked
        stmt = stmt.with_for_update(of=model)
    return stmt.limit(1)


def get_visible_or_404(
    db: Session,
    ctx: TenantContext,
    record_kind: str,
    *criteria: Any,
    label: str | None = None,
    for_update: bool = False,
) -> Any:
    """
    Fetch one record and re-check it against the list-query visibility rules.

    Missing, cross-tenant and cross-branch records all raise the same NotFoundError,
    so the response never reveals that a hidden record exists.
    `for_update=True` locks the row for the rest of the transaction (status transitions).
    """

    not_found = NotFoundError(f"{label or record_kind.capitalize()} not found")

    stmt = lookup_statement(ctx, record_kind, *criteria, for_update=for_update)
    record = db.scalars(stmt).unique().first()

    if record is None:
        raise not_found
    if not policy.allows(ctx, record_kind, record):
        logger.info(
            "Hidden %s requested user=%s role=%s branch=%s",
            record_kind,
            ctx.user_id,
            ctx.role,
            ctx.branch_id,
        )
        raise not_found
    return record
