from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from cargo_api.settings import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)

TENANT_CONTEXT_KEY = "tenant_context"
# Execution option for the few lookups that must span tenants (global username check).
SKIP_TENANT_SCOPE = "skip_tenant_scope"


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Main DB dependency.

    When the security dependency has resolved a tenant context for this request it is copied
    into `Session.info`, where the `do_orm_execute` hook in `cargo_api.db.filters` picks it up.
    """

    db = SessionLocal()
    try:
        bind_tenant_context(db, request)
        yield db
    finally:
        db.close()


def bind_tenant_context(db: Session, request: Request) -> None:
    ctx = getattr(getattr(request, "state", None), TENANT_CONTEXT_KEY, None)
    if ctx is not None:
        db.info[TENANT_CONTEXT_KEY] = ctx


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a compound mutation as one transaction.

    Commits when the block exits cleanly; on any exception everything written inside
    the block is rolled back and the exception propagates.
    """

    try:
        yield db
        db.commit()
    except Exception:
        logger.info("Rolling back transaction")
        db.rollback()
        raise
