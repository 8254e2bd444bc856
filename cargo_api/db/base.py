from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # Naive UTC; SQLite does not round-trip tz info.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TenantScoped:
    """
    Mixin for every business table.

    `cargo_api.db.filters` adds `tenant_id == <current tenant>` to all ORM selects
    of subclasses whenever a tenant context is attached to the session.
    """

    @declared_attr
    def tenant_id(cls) -> Mapped[str]:
        return mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
