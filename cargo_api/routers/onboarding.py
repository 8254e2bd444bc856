from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from cargo_api.access import TenantContext
from cargo_api.db.session import get_db
from cargo_api.schemas.common import ApiResponse, envelope
from cargo_api.schemas.tenancy import (
    OnboardingProgressIn,
    SendOtpIn,
    SendOtpOut,
    SignupIn,
    SignupOut,
    TrialStatusOut,
    VerifyOtpIn,
)
from cargo_api.security.dependencies import (
    get_app_settings,
    get_mailer,
    get_sms_sender,
    get_tenant_context,
    get_token_signer,
)
from cargo_api.security.tokens import TokenSigner, session_claims
from cargo_api.services import onboarding
from cargo_api.services.notifications import Mailer, SmsSender
from cargo_api.settings import Settings

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@router.post("/send-otp", response_model=ApiResponse[SendOtpOut])
def send_otp(
    body: SendOtpIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    sms: SmsSender = Depends(get_sms_sender),
) -> dict:
    record = onboarding.send_otp(db, settings, sms, body.phone, str(body.email))
    # The code itself is only echoed back in development.
    data = {"expires_at": record.expires_at, "otp": record.otp if settings.is_development else None}
    return envelope(data, message="OTP sent successfully")


@router.post("/verify-otp", response_model=ApiResponse[None])
def verify_otp(
    body: VerifyOtpIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    onboarding.verify_otp(db, settings, body.phone, body.otp)
    return envelope(message="OTP verified successfully")


@router.post("/signup", response_model=ApiResponse[SignupOut], status_code=status.HTTP_201_CREATED)
def signup(
    body: SignupIn,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    mailer: Mailer = Depends(get_mailer),
    signer: TokenSigner = Depends(get_token_signer),
) -> dict:
    result = onboarding.signup(db, settings, mailer, body, source=request.headers.get("referer") or "direct")
    claims = session_claims(result.user)
    return envelope(
        {
            "tenant": result.tenant,
            "branch": result.branch,
            "user": result.user,
            "access_token": signer.issue_access_token(claims),
            "refresh_token": signer.issue_refresh_token(claims),
        },
        message="Welcome to DesiCargo! Your account has been created successfully.",
    )


@router.post("/progress", response_model=ApiResponse[None])
def progress(
    body: OnboardingProgressIn,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    onboarding.record_progress(db, ctx, body.step, body.completed)
    return envelope(message="Onboarding progress updated")


@router.get("/trial-status", response_model=ApiResponse[TrialStatusOut])
def trial_status(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    return envelope(onboarding.trial_status(db, ctx, settings))
