from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["superadmin", "admin", "manager", "operator", "accountant"]

PHONE_PATTERN = r"^[0-9]{10}$"
PINCODE_PATTERN = r"^[0-9]{6}$"


# Branches


class BranchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    branch_code: str
    name: str
    address: str | None
    city: str | None
    state: str | None
    pincode: str | None
    phone: str | None
    email: str | None
    is_head_office: bool
    is_active: bool
    created_at: datetime


class BranchCreate(BaseModel):
    branch_code: str = Field(min_length=2, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None
    is_head_office: bool = False


class BranchUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None
    is_head_office: bool | None = None
    is_active: bool | None = None


# Users


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    username: str
    full_name: str
    role: str
    branch_id: str | None
    branch_name: str | None = None
    tenant_name: str | None = None
    phone: str | None
    email: str | None
    is_active: bool
    last_login: datetime | None
    created_at: datetime


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1, max_length=100)
    role: Role = "operator"
    branch_id: str | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None


class UserUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=100)
    role: Role | None = None
    branch_id: str | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None
    is_active: bool | None = None
    password: str | None = Field(default=None, min_length=6)


# Auth


class LoginIn(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshIn(BaseModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordIn(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class SessionOut(BaseModel):
    user: UserOut
    access_token: str
    refresh_token: str


class AccessTokenOut(BaseModel):
    access_token: str


# Onboarding


class SendOtpIn(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    email: EmailStr


class SendOtpOut(BaseModel):
    otp: str | None = None
    expires_at: datetime


class VerifyOtpIn(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    otp: str = Field(min_length=4, max_length=6)


class FirstBranchIn(BaseModel):
    branch_code: str = Field(min_length=2, max_length=20)
    branch_name: str = Field(min_length=1, max_length=100)
    same_as_head: bool = True
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)


class AdminUserIn(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)


class SignupIn(BaseModel):
    company_name: str = Field(min_length=2, max_length=200)
    company_code: str | None = Field(default=None, min_length=2, max_length=50, pattern=r"^[A-Za-z0-9]+$")
    owner_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(pattern=PHONE_PATTERN)
    email: EmailStr
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)
    gstin: str | None = None
    business_type: str | None = None
    fleet_size: str | None = None
    first_branch: FirstBranchIn
    admin_user: AdminUserIn


class TenantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    name: str
    subscription_plan: str
    trial_ends_at: datetime | None


class SignupOut(BaseModel):
    tenant: TenantOut
    branch: BranchOut
    user: UserOut
    access_token: str
    refresh_token: str


class OnboardingProgressIn(BaseModel):
    step: str = Field(min_length=1, max_length=50, pattern=r"^[a-z0-9_]+$")
    completed: bool = True


class TrialUsage(BaseModel):
    monthly_bookings: int
    total_users: int
    total_branches: int


class TrialStatusOut(BaseModel):
    subscription_plan: str
    trial_ends_at: datetime | None
    days_remaining: int
    is_expired: bool
    onboarding_completed: bool
    onboarding_steps: dict[str, Any]
    usage: TrialUsage
    limits: TrialUsage
