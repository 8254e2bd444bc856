"""
Branch Visibility Policy.

Privileged roles (admin, superadmin) see the whole tenant. Every other role sees a
row only when its assigned branch appears in at least one of the branch columns
registered for that record kind (OR semantics). A non-privileged user without an
assigned branch sees nothing.

Record kinds with no branch columns (customers) are tenant-wide for every role.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy.orm import InstrumentedAttribute

from cargo_api.access.context import PRIVILEGED_ROLES, TenantContext
from cargo_api.access.predicates import AnyOf, Filter, MatchNothing, Unrestricted, matches
from cargo_api.models.shipping import Consignment, Customer, Ogpl
from cargo_api.models.tenancy import Branch, User

logger = logging.getLogger(__name__)


BRANCH_COLUMNS: Mapping[str, tuple[InstrumentedAttribute, ...]] = {
    "consignment": (Consignment.from_branch_id, Consignment.to_branch_id, Consignment.current_branch_id),
    "ogpl": (Ogpl.from_branch_id, Ogpl.to_branch_id),
    "user": (User.branch_id,),
    "branch": (Branch.id,),
    "customer": (),
}

RECORD_MODELS: Mapping[str, type] = {
    "consignment": Consignment,
    "ogpl": Ogpl,
    "user": User,
    "branch": Branch,
    "customer": Customer,
}


def compute_filter(role: str, assigned_branch: str | None, record_kind: str) -> Filter:
    columns = BRANCH_COLUMNS[record_kind]

    if role in PRIVILEGED_ROLES or not columns:
        return Unrestricted()

    if not assigned_branch:
        logger.debug("Branch-scoped role=%s without branch; kind=%s matches nothing", role, record_kind)
        return MatchNothing("no assigned branch")

    return AnyOf(columns, assigned_branch)


def filter_for(ctx: TenantContext, record_kind: str) -> Filter:
    return compute_filter(ctx.role, ctx.branch_id, record_kind)


def allows(ctx: TenantContext, record_kind: str, record: object) -> bool:
    """True when `record` belongs to the caller's tenant and passes the branch filter."""

    if getattr(record, "tenant_id", None) != ctx.tenant_id:
        return False
    return matches(filter_for(ctx, record_kind), record)
