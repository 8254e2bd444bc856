from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from cargo_api.schemas.tenancy import PHONE_PATTERN, PINCODE_PATTERN

ConsignmentStatus = Literal[
    "booked",
    "picked",
    "in_transit",
    "reached",
    "out_for_delivery",
    "delivered",
    "undelivered",
    "cancelled",
]
PaymentType = Literal["paid", "topay", "tbb"]
DeliveryType = Literal["godown", "door"]
CustomerType = Literal["regular", "walkin", "corporate"]


# Customers


class CustomerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_code: str | None
    name: str
    phone: str
    alternate_phone: str | None
    email: str | None
    address: str | None
    city: str | None
    state: str | None
    pincode: str | None
    gstin: str | None
    customer_type: str
    credit_limit: float
    credit_days: int
    special_instructions: str | None
    is_active: bool
    created_at: datetime


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(pattern=PHONE_PATTERN)
    customer_code: str | None = Field(default=None, max_length=20)
    alternate_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)
    gstin: str | None = Field(default=None, max_length=20)
    customer_type: CustomerType = "regular"
    credit_limit: float = Field(default=0, ge=0)
    credit_days: int = Field(default=0, ge=0)
    special_instructions: str | None = None


class CustomerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    customer_code: str | None = Field(default=None, max_length=20)
    alternate_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    email: EmailStr | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)
    gstin: str | None = Field(default=None, max_length=20)
    customer_type: CustomerType | None = None
    credit_limit: float | None = Field(default=None, ge=0)
    credit_days: int | None = Field(default=None, ge=0)
    special_instructions: str | None = None
    is_active: bool | None = None


class CustomerImportIn(BaseModel):
    customers: list[dict] = Field(min_length=1, max_length=1000)


class CustomerImportRowError(BaseModel):
    row: int
    error: str


class CustomerImportOut(BaseModel):
    created: int
    updated: int
    errors: list[CustomerImportRowError]


# Consignments


class TrackingEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    location: str | None
    branch_id: str | None
    branch_name: str | None = None
    branch_city: str | None = None
    remarks: str | None
    created_by: str | None
    created_at: datetime


class ConsignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cn_number: str
    booking_date: date
    booking_time: time

    from_branch_id: str
    from_branch_name: str | None = None
    from_city: str | None = None
    to_branch_id: str | None
    to_branch_name: str | None = None
    to_city: str | None = None
    current_branch_id: str | None
    current_branch_name: str | None = None

    consignor_id: str | None
    consignor_name: str
    consignor_phone: str
    consignor_address: str | None
    consignor_gstin: str | None
    consignee_name: str
    consignee_phone: str
    consignee_address: str | None
    consignee_pincode: str | None

    goods_description: str | None
    goods_value: float | None
    eway_bill_number: str | None
    invoice_number: str | None
    no_of_packages: int
    actual_weight: float | None
    charged_weight: float | None

    freight_amount: float
    hamali_charges: float
    door_delivery_charges: float
    loading_charges: float
    unloading_charges: float
    other_charges: float
    statistical_charges: float
    gst_percentage: float
    cgst: float
    sgst: float
    igst: float
    total_amount: float

    payment_type: str
    delivery_type: str
    status: str
    ogpl_id: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class ConsignmentDetailOut(ConsignmentOut):
    tracking_history: list[TrackingEventOut] = Field(default_factory=list)


class ConsignmentCreate(BaseModel):
    from_branch_id: str
    to_branch_id: str

    consignor_id: str | None = None
    consignor_name: str = Field(min_length=1, max_length=200)
    consignor_phone: str = Field(pattern=PHONE_PATTERN)
    consignor_address: str | None = None
    consignor_gstin: str | None = Field(default=None, max_length=20)

    consignee_name: str = Field(min_length=1, max_length=200)
    consignee_phone: str = Field(pattern=PHONE_PATTERN)
    consignee_address: str | None = None
    consignee_pincode: str | None = Field(default=None, pattern=PINCODE_PATTERN)

    goods_description: str | None = None
    goods_value: float | None = Field(default=None, ge=0)
    eway_bill_number: str | None = Field(default=None, max_length=30)
    invoice_number: str | None = Field(default=None, max_length=50)
    no_of_packages: int = Field(ge=1)
    actual_weight: float | None = Field(default=None, ge=0)
    charged_weight: float | None = Field(default=None, ge=0)

    freight_amount: float = Field(ge=0)
    hamali_charges: float = Field(default=0, ge=0)
    door_delivery_charges: float = Field(default=0, ge=0)
    loading_charges: float = Field(default=0, ge=0)
    unloading_charges: float = Field(default=0, ge=0)
    other_charges: float = Field(default=0, ge=0)
    statistical_charges: float = Field(default=0, ge=0)

    payment_type: PaymentType
    delivery_type: DeliveryType = "godown"


class StatusUpdateIn(BaseModel):
    # Checked against the status set in the service before any write.
    status: str = Field(min_length=1)
    remarks: str | None = None
    branch_id: str | None = None


class PublicTrackingEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    location: str | None
    branch_city: str | None = None
    created_at: datetime


class PublicTrackingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cn_number: str
    booking_date: date
    consignor_name: str
    consignee_name: str
    no_of_packages: int
    status: str
    delivery_type: str
    from_city: str | None = None
    to_city: str | None = None
    current_city: str | None = None
    tracking_history: list[PublicTrackingEventOut] = Field(default_factory=list)


# OGPL


class OgplOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ogpl_number: str
    ogpl_date: date
    from_branch_id: str
    from_branch_name: str | None = None
    to_branch_id: str
    to_branch_name: str | None = None
    vehicle_number: str
    driver_name: str | None
    driver_phone: str | None
    seal_number: str | None
    departure_time: datetime | None
    arrival_time: datetime | None
    total_consignments: int
    total_packages: int
    total_weight: float
    status: str
    created_by: str | None
    created_at: datetime


class OgplDetailOut(OgplOut):
    consignments: list[ConsignmentOut] = Field(default_factory=list)


class OgplCreate(BaseModel):
    from_branch_id: str
    to_branch_id: str
    vehicle_number: str = Field(min_length=4, max_length=20)
    driver_name: str | None = Field(default=None, max_length=100)
    driver_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    seal_number: str | None = Field(default=None, max_length=50)


class OgplLoadIn(BaseModel):
    consignment_ids: list[str] = Field(min_length=1, max_length=500)


class OgplMoveIn(BaseModel):
    remarks: str | None = None


# Dashboard


class DashboardStatsOut(BaseModel):
    today_bookings: int
    today_revenue: float
    month_bookings: int
    month_revenue: float
    in_transit: int
    pending_delivery: int
    delivered_today: int
    pending_ogpl: int
    status_breakdown: dict[str, int]


class RevenuePoint(BaseModel):
    date: date
    bookings: int
    revenue: float


class BranchSummaryRow(BaseModel):
    branch_id: str
    branch_code: str
    branch_name: str
    city: str | None
    bookings: int
    revenue: float
    in_transit: int
    delivered: int


class CustomerDetailOut(CustomerOut):
    recent_bookings: list[ConsignmentOut] = Field(default_factory=list)
