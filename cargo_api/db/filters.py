from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, with_loader_criteria

from cargo_api.db.base import TenantScoped
from cargo_api.db.session import SKIP_TENANT_SCOPE, TENANT_CONTEXT_KEY


@event.listens_for(Session, "do_orm_execute")
def _apply_tenant_scope(execute_state) -> None:
    """
    Transparent tenant scoping.

    Any ORM select issued on a session that carries a tenant context, including
    relationship and eager loads, only ever sees rows of that tenant:
        db.scalars(select(Customer)).all()
    Branch visibility is *not* applied here; that is per record kind and lives in
    `cargo_api.access`.

    A statement can opt out explicitly:
        select(User.id).execution_options(skip_tenant_scope=True)
    """

    if not execute_state.is_select:
        return
    if execute_state.execution_options.get(SKIP_TENANT_SCOPE):
        return

    ctx = execute_state.session.info.get(TENANT_CONTEXT_KEY)
    if ctx is None:
        return

    tenant_id = ctx.tenant_id
    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(TenantScoped, lambda cls: cls.tenant_id == tenant_id, include_aliases=True),
    )
