from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from cargo_api.db.base import Base, utcnow
from cargo_api.db.session import SessionLocal, engine as default_engine
from cargo_api.models import shipping as _shipping  # noqa: F401  (register shipping tables)
from cargo_api.models.tenancy import Branch, Tenant, User
from cargo_api.security.auth import hash_password

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "demo1234"


def init_db(*, seed_demo_data: bool = False, engine: Engine | None = None, bcrypt_rounds: int = 12) -> None:
    """
    Create tables and, when asked, seed two small demo companies.

    The seed is deterministic so branch isolation can be tried by hand:
    `demo_admin` sees both DEMO branches, `demo_mum` only Mumbai, `demo_del` only
    Delhi, and nobody in DEMO sees anything of ACME.
    """

    bind = engine or default_engine
    Base.metadata.create_all(bind=bind)

    if not seed_demo_data:
        return

    with (Session(bind=bind) if engine is not None else SessionLocal()) as db:
        if _has_seed_data(db):
            return
        _seed(db, bcrypt_rounds)
        logger.info("Seeded demo tenants DEMO and ACME (password=%s)", DEMO_PASSWORD)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Tenant.id).where(Tenant.code == "DEMO").limit(1)).first() is not None


def _tenant(code: str, name: str, phone: str, email: str) -> Tenant:
    return Tenant(
        code=code,
        name=name,
        owner_name=f"{name} Owner",
        phone=phone,
        email=email,
        subscription_plan="trial",
        trial_ends_at=utcnow() + timedelta(days=30),
        onboarding_completed=True,
        onboarding_steps={},
    )


def _seed(db: Session, bcrypt_rounds: int) -> None:
    password_hash = hash_password(DEMO_PASSWORD, rounds=bcrypt_rounds)

    demo = _tenant("DEMO", "Demo Transport", "9000000001", "owner@demo-transport.example")
    acme = _tenant("ACME", "Acme Logistics", "9000000002", "owner@acme-logistics.example")
    db.add_all([demo, acme])
    db.flush()

    mum = Branch(
        tenant_id=demo.id, branch_code="MUM", name="Mumbai HO", city="Mumbai", state="Maharashtra", is_head_office=True
    )
    pune = Branch(tenant_id=demo.id, branch_code="PUN", name="Pune", city="Pune", state="Maharashtra")
    dl = Branch(tenant_id=demo.id, branch_code="DEL", name="Delhi", city="Delhi", state="Delhi")
    acme_hq = Branch(
        tenant_id=acme.id, branch_code="BLR", name="Bengaluru HO", city="Bengaluru", state="Karnataka", is_head_office=True
    )
    db.add_all([mum, pune, dl, acme_hq])
    db.flush()

    db.add_all(
        [
            User(
                tenant_id=demo.id,
                branch_id=mum.id,
                username="demo_admin",
                password_hash=password_hash,
                full_name="Demo Admin",
                role="admin",
            ),
            User(
                tenant_id=demo.id,
                branch_id=mum.id,
                username="demo_mum",
                password_hash=password_hash,
                full_name="Mumbai Operator",
                role="operator",
            ),
            User(
                tenant_id=demo.id,
                branch_id=dl.id,
                username="demo_del",
                password_hash=password_hash,
                full_name="Delhi Manager",
                role="manager",
            ),
            User(
                tenant_id=acme.id,
                branch_id=acme_hq.id,
                username="acme_admin",
                password_hash=password_hash,
                full_name="Acme Admin",
                role="admin",
            ),
        ]
    )
    db.commit()
