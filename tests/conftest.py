"""
Pytest fixtures for the test suite.

Every test gets a fresh in-memory SQLite database. The engine uses a StaticPool so
the test session and the sessions opened by API requests share one connection and
see each other's committed rows.

`world` seeds two companies:
    DEMO: branches MUM (head office), PUN, DEL; users admin, op_mum, op_del, mgr_pun, op_nobranch
    ACME: branch BLR; user acme_admin
"""
from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cargo_api.access import TenantContext
from cargo_api.db.base import utcnow
from cargo_api.errors import DependencyFailure
from cargo_api.settings import Settings

TEST_DB_URL = "sqlite://"
PASSWORD = "secret123"


class FakeSms:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send(self, phone: str, message: str) -> None:
        if self.fail:
            raise DependencyFailure("Failed to send SMS")
        self.sent.append((phone, message))


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DependencyFailure("Failed to send email")
        self.sent.append((to, subject, body))


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        db_url=TEST_DB_URL,
        bcrypt_rounds=4,
        jwt_secret="test-access-secret-0123456789abcdef",
        jwt_refresh_secret="test-refresh-secret-0123456789abcdef",
        sms_api_key=None,
        smtp_host=None,
        default_page_limit=50,
        max_page_limit=200,
    )


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from cargo_api.db import filters  # noqa: F401
    from cargo_api.db.base import Base
    from cargo_api.models import shipping, tenancy  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(tables):
    return sessionmaker(bind=tables, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def db_session(session_factory):
    """Session bound to the test DB. Services commit through it like they do in the app."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def app(settings, session_factory, sms, mailer):
    from cargo_api.db.session import bind_tenant_context, get_db
    from cargo_api.main import create_app

    app = create_app(settings, sms_sender=sms, mailer=mailer)

    def _get_db(request: Request):
        db = session_factory()
        try:
            bind_tenant_context(db, request)
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def world(db_session, settings):
    from cargo_api.models.tenancy import Branch, Tenant, User
    from cargo_api.security.auth import hash_password

    password_hash = hash_password(PASSWORD, rounds=settings.bcrypt_rounds)

    def tenant(code: str, phone: str) -> Tenant:
        return Tenant(
            code=code,
            name=f"{code.title()} Transport",
            phone=phone,
            email=f"owner@{code.lower()}.example",
            subscription_plan="trial",
            trial_ends_at=utcnow(),
            onboarding_steps={},
        )

    def user(t: Tenant, username: str, role: str, branch: Branch | None) -> User:
        return User(
            tenant_id=t.id,
            branch_id=branch.id if branch is not None else None,
            username=username,
            password_hash=password_hash,
            full_name=username.replace("_", " ").title(),
            role=role,
        )

    demo = tenant("DEMO", "9000000001")
    acme = tenant("ACME", "9000000002")
    db_session.add_all([demo, acme])
    db_session.flush()

    mum = Branch(tenant_id=demo.id, branch_code="MUM", name="Mumbai", city="Mumbai", state="Maharashtra", is_head_office=True)
    pun = Branch(tenant_id=demo.id, branch_code="PUN", name="Pune", city="Pune", state="Maharashtra")
    dl = Branch(tenant_id=demo.id, branch_code="DEL", name="Delhi", city="Delhi", state="Delhi")
    blr = Branch(tenant_id=acme.id, branch_code="BLR", name="Bengaluru", city="Bengaluru", state="Karnataka", is_head_office=True)
    db_session.add_all([mum, pun, dl, blr])
    db_session.flush()

    users = {
        "admin": user(demo, "demo_admin", "admin", mum),
        "op_mum": user(demo, "op_mum", "operator", mum),
        "op_del": user(demo, "op_del", "operator", dl),
        "mgr_pun": user(demo, "mgr_pun", "manager", pun),
        "op_nobranch": user(demo, "op_nobranch", "operator", None),
        "acme_admin": user(acme, "acme_admin", "admin", blr),
    }
    db_session.add_all(users.values())
    db_session.commit()

    return SimpleNamespace(demo=demo, acme=acme, mum=mum, pun=pun, dl=dl, blr=blr, **users)


@pytest.fixture
def ctx_for():
    def _ctx(user) -> TenantContext:
        return TenantContext(
            tenant_id=user.tenant_id,
            tenant_code=user.tenant.code,
            user_id=user.id,
            username=user.username,
            role=user.role,
            branch_id=user.branch_id,
        )

    return _ctx


@pytest.fixture
def auth_headers(settings):
    from cargo_api.security.tokens import TokenSigner, session_claims

    signer = TokenSigner(settings)

    def _headers(user, **extra: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {signer.issue_access_token(session_claims(user))}", **extra}

    return _headers


@pytest.fixture
def booking_payload():
    def _payload(from_branch, to_branch, **overrides) -> dict:
        payload = {
            "from_branch_id": from_branch.id,
            "to_branch_id": to_branch.id,
            "consignor_name": "Ravi Traders",
            "consignor_phone": "9811111111",
            "consignee_name": "Sharma Stores",
            "consignee_phone": "9822222222",
            "no_of_packages": 3,
            "actual_weight": 45.5,
            "freight_amount": 1000,
            "hamali_charges": 50,
            "payment_type": "paid",
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def make_consignment(db_session):
    """Insert a consignment row directly, bypassing the booking service."""
    from cargo_api.models.shipping import Consignment

    counter = {"n": 0}

    def _make(tenant, from_branch, to_branch, current_branch=None, **overrides) -> Consignment:
        counter["n"] += 1
        now = utcnow()
        values = dict(
            tenant_id=tenant.id,
            cn_number=f"{from_branch.branch_code}{now.year}{counter['n']:06d}",
            booking_date=now.date(),
            booking_time=now.time().replace(microsecond=0),
            from_branch_id=from_branch.id,
            to_branch_id=to_branch.id,
            current_branch_id=(current_branch or from_branch).id,
            consignor_name="Consignor",
            consignor_phone="9811111111",
            consignee_name="Consignee",
            consignee_phone="9822222222",
            no_of_packages=1,
            actual_weight=Decimal("10"),
            charged_weight=Decimal("10"),
            freight_amount=Decimal("100"),
            gst_percentage=Decimal("18"),
            total_amount=Decimal("118"),
            payment_type="paid",
            status="booked",
        )
        values.update(overrides)
        consignment = Consignment(**values)
        db_session.add(consignment)
        db_session.commit()
        return consignment

    return _make
