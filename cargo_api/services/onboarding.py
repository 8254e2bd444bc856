"""
Company self-signup: phone OTP, tenant creation on a trial plan, onboarding progress.

Signup is the one flow that creates a tenant, so it runs without a tenant context.
Everything it writes (tenant, head-office branch, admin user, starter customers,
analytics event) commits in a single transaction; the welcome mail goes out only
after that commit, and its failure does not undo the signup.
"""

from __future__ import annotations

import logging
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from cargo_api.access import TenantContext
from cargo_api.db.base import utcnow
from cargo_api.db.session import atomic
from cargo_api.errors import ConflictError, DependencyFailure, NotFoundError, ValidationError
from cargo_api.models.shipping import Consignment, Customer
from cargo_api.models.tenancy import Branch, OnboardingEvent, OtpVerification, Tenant, User
from cargo_api.schemas.tenancy import SignupIn
from cargo_api.security.auth import hash_password, username_taken
from cargo_api.services import notifications
from cargo_api.services.notifications import Mailer, SmsSender
from cargo_api.settings import Settings

logger = logging.getLogger(__name__)

OTP_PURPOSE = "signup"
FINAL_STEP = "complete"

STARTER_CUSTOMERS = (
    {
        "name": "Cash Customer",
        "customer_type": "walkin",
        "phone": "9999999999",
        "address": "Walk-in Customer",
        "city": "Various",
        "credit_limit": Decimal("0"),
    },
    {
        "name": "Sample Customer - ABC Traders",
        "customer_type": "regular",
        "phone": "9876543210",
        "gstin": "27AAACB1234C1Z5",
        "address": "123 Business Park",
        "city": "Mumbai",
        "credit_limit": Decimal("50000"),
    },
)


def _company_exists(db: Session, phone: str, email: str) -> bool:
    stmt = select(Tenant.id).where(or_(Tenant.phone == phone, func.lower(Tenant.email) == email.lower()))
    return db.scalar(stmt.limit(1)) is not None


def send_otp(db: Session, settings: Settings, sms: SmsSender, phone: str, email: str) -> OtpVerification:
    if _company_exists(db, phone, email):
        raise ConflictError("Company with this phone or email already exists")

    record = OtpVerification(
        phone=phone,
        email=email,
        otp=f"{secrets.randbelow(900000) + 100000}",
        purpose=OTP_PURPOSE,
        expires_at=utcnow() + timedelta(minutes=settings.otp_ttl_minutes),
    )
    with atomic(db):
        db.add(record)

    # A failed delivery leaves the caller without a code, so it is a hard failure.
    sms.send(phone, notifications.otp_message(record.otp, settings.otp_ttl_minutes))
    logger.info("Signup OTP issued phone=%s", phone)
    return record


def verify_otp(db: Session, settings: Settings, phone: str, otp: str) -> None:
    if settings.is_development and otp == settings.dev_otp:
        logger.info("Development OTP accepted phone=%s", phone)
        return

    stmt = (
        select(OtpVerification)
        .where(
            OtpVerification.phone == phone,
            OtpVerification.otp == otp,
            OtpVerification.purpose == OTP_PURPOSE,
            OtpVerification.expires_at > utcnow(),
            OtpVerification.is_verified.is_(False),
        )
        .order_by(OtpVerification.created_at.desc(), OtpVerification.id.desc())
        .limit(1)
    )
    with atomic(db):
        record = db.scalars(stmt).first()
        if record is None:
            raise ValidationError("Invalid or expired OTP")
        record.is_verified = True


def _phone_verified(db: Session, phone: str) -> bool:
    stmt = select(OtpVerification.id).where(
        OtpVerification.phone == phone,
        OtpVerification.purpose == OTP_PURPOSE,
        OtpVerification.is_verified.is_(True),
    )
    return db.scalar(stmt.limit(1)) is not None


def _tenant_code(db: Session, data: SignupIn) -> str:
    if data.company_code:
        code = data.company_code.upper()
        if db.scalar(select(Tenant.id).where(Tenant.code == code)) is not None:
            raise ConflictError("Company code already exists")
        return code

    base = re.sub(r"[^A-Z0-9]", "", data.company_name.upper())[:8] or "COMPANY"
    code, n = base, 1
    while db.scalar(select(Tenant.id).where(Tenant.code == code)) is not None:
        n += 1
        code = f"{base}{n}"
    return code


@dataclass(frozen=True)
class SignupResult:
    tenant: Tenant
    branch: Branch
    user: User


def signup(db: Session, settings: Settings, mailer: Mailer, data: SignupIn, *, source: str = "direct") -> SignupResult:
    if not settings.is_development and not _phone_verified(db, data.phone):
        raise ValidationError("Please verify your phone number first")
    if _company_exists(db, data.phone, data.email):
        raise ConflictError("Company with this phone or email already exists")
    if username_taken(db, data.admin_user.username):
        raise ConflictError("Username already exists")

    first = data.first_branch
    with atomic(db):
        tenant = Tenant(
            code=_tenant_code(db, data),
            name=data.company_name,
            owner_name=data.owner_name,
            phone=data.phone,
            email=str(data.email),
            gstin=data.gstin,
            address=data.address,
            city=data.city,
            state=data.state,
            pincode=data.pincode,
            business_type=data.business_type,
            fleet_size=data.fleet_size,
            subscription_plan="trial",
            trial_ends_at=utcnow() + timedelta(days=settings.trial_days),
            onboarding_steps={},
        )
        db.add(tenant)
        db.flush()

        branch = Branch(
            tenant_id=tenant.id,
            branch_code=first.branch_code.upper(),
            name=first.branch_name,
            address=data.address if first.same_as_head else first.address,
            city=data.city if first.same_as_head else first.city,
            state=data.state if first.same_as_head else first.state,
            pincode=data.pincode if first.same_as_head else first.pincode,
            phone=first.phone or data.phone,
            is_head_office=True,
        )
        db.add(branch)
        db.flush()

        user = User(
            tenant_id=tenant.id,
            branch_id=branch.id,
            username=data.admin_user.username,
            password_hash=hash_password(data.admin_user.password, rounds=settings.bcrypt_rounds),
            full_name=data.owner_name,
            role="admin",
            phone=data.phone,
            email=str(data.email),
        )
        db.add(user)

        for row in STARTER_CUSTOMERS:
            db.add(Customer(tenant_id=tenant.id, created_by=None, **row))

        db.add(OnboardingEvent(tenant_id=tenant.id, event_name="company_created", event_data={"source": source}))
        db.flush()

    logger.info("Tenant created code=%s tenant=%s", tenant.code, tenant.id)

    subject, body = notifications.welcome_email(tenant.name, tenant.code, user.username, settings.trial_days)
    try:
        mailer.send(tenant.email, subject, body)
    except DependencyFailure:
        logger.warning("Welcome email failed tenant=%s; signup kept", tenant.id)

    return SignupResult(tenant=tenant, branch=branch, user=user)


def _tenant(db: Session, ctx: TenantContext) -> Tenant:
    tenant = db.get(Tenant, ctx.tenant_id)
    if tenant is None:
        raise NotFoundError("Company not found")
    return tenant


def record_progress(db: Session, ctx: TenantContext, step: str, completed: bool) -> Tenant:
    with atomic(db):
        tenant = _tenant(db, ctx)
        steps = dict(tenant.onboarding_steps or {})
        steps[step] = {"completed": completed, "timestamp": utcnow().isoformat()}
        # Reassign so the JSON column is flagged dirty.
        tenant.onboarding_steps = steps
        if step == FINAL_STEP:
            tenant.onboarding_completed = completed
        db.add(
            OnboardingEvent(
                tenant_id=tenant.id,
                event_name="onboarding_step_completed",
                event_data={"step": step, "completed": completed},
            )
        )
    return tenant


def days_remaining(trial_ends_at: datetime | None, now: datetime) -> int:
    if trial_ends_at is None:
        return 0
    return max(0, math.ceil((trial_ends_at - now).total_seconds() / 86400))


def trial_status(db: Session, ctx: TenantContext, settings: Settings) -> dict:
    tenant = _tenant(db, ctx)
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    monthly_bookings = db.scalar(
        select(func.count())
        .select_from(Consignment)
        .where(Consignment.tenant_id == tenant.id, Consignment.created_at >= month_start)
    )
    total_users = db.scalar(
        select(func.count()).select_from(User).where(User.tenant_id == tenant.id, User.is_active.is_(True))
    )
    total_branches = db.scalar(
        select(func.count()).select_from(Branch).where(Branch.tenant_id == tenant.id, Branch.is_active.is_(True))
    )

    return {
        "subscription_plan": tenant.subscription_plan,
        "trial_ends_at": tenant.trial_ends_at,
        "days_remaining": days_remaining(tenant.trial_ends_at, now),
        "is_expired": tenant.subscription_plan == "trial"
        and tenant.trial_ends_at is not None
        and tenant.trial_ends_at <= now,
        "onboarding_completed": tenant.onboarding_completed,
        "onboarding_steps": tenant.onboarding_steps or {},
        "usage": {
            "monthly_bookings": int(monthly_bookings or 0),
            "total_users": int(total_users or 0),
            "total_branches": int(total_branches or 0),
        },
        "limits": {
            "monthly_bookings": settings.trial_max_consignments_per_month,
            "total_users": settings.trial_max_users,
            "total_branches": settings.trial_max_branches,
        },
    }
