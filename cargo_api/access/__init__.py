"""
Tenant- and branch-scoped access control.

Flow for every authenticated request:

    token claims --resolve_tenant_context--> TenantContext
    TenantContext + record kind --compute_filter--> visibility predicate
    predicate + caller filters --ScopedQuery--> count + stable page
    single-record reads/writes --get_visible_or_404--> record or 404

This package does not know about FastAPI routing; `cargo_api.security` wires it in.
"""

from .context import PRIVILEGED_ROLES, TenantContext
from .guard import get_visible_or_404
from .policy import allows, compute_filter, filter_for
from .predicates import AnyOf, DateRange, Eq, In, IsNull, MatchNothing, Search, Unrestricted, compose
from .query import Page, PageParams, ScopedQuery, page_params
from .resolver import resolve_tenant_context

__all__ = [
    "PRIVILEGED_ROLES",
    "TenantContext",
    "get_visible_or_404",
    "allows",
    "compute_filter",
    "filter_for",
    "AnyOf",
    "DateRange",
    "Eq",
    "In",
    "IsNull",
    "MatchNothing",
    "Search",
    "Unrestricted",
    "compose",
    "Page",
    "PageParams",
    "ScopedQuery",
    "page_params",
    "resolve_tenant_context",
]
